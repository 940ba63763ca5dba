"""
Modèle SQLAlchemy pour les présences enregistrées par scan de QR code.

- status : classification calculée au scan (present, late, absent)
- override_status : correction manuelle par l'enseignant, stockée à part
  pour conserver la classification d'origine
- Unicité (student_id, lecture_id) garantie par la base
"""

import uuid
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func,
)

from lecturetrack.database import Base


class Attendance(Base):
    """Présence d'un étudiant à un cours."""
    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("student_id", "lecture_id", name="uq_attendances_student_lecture"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    lecture_id = Column(Uuid, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False, index=True)
    qr_code_id = Column(Uuid, ForeignKey("qr_codes.id"), nullable=False)

    scanned_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False)  # present, late, absent

    override_status = Column(String(20), nullable=True)  # present, late, absent, excused
    override_notes = Column(String(200), nullable=True)
    overridden_by = Column(Uuid, nullable=True)
    overridden_at = Column(DateTime(timezone=True), nullable=True)

    device_info = Column(JSON, nullable=True)  # browser, os, device, user_agent, ip
    is_verified = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def effective_status(self) -> str:
        return self.override_status or self.status
