"""
Modèle SQLAlchemy pour les cours (sessions de présence).

L'horaire est saisi en heure locale (date + HH:MM) avec un fuseau IANA explicite ;
starts_at / ends_at stockent les instants UTC correspondants, seuls utilisés
pour les comparaisons.
"""

import uuid
from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text, Uuid, func

from lecturetrack.database import Base


class Lecture(Base):
    __tablename__ = "lectures"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lecturer_id = Column(Uuid, nullable=False, index=True)
    lecturer_name = Column(String(100), nullable=False, default="")

    unit_name = Column(String(255), nullable=False)
    unit_code = Column(String(50), nullable=False, index=True)
    venue = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)   # HH:MM
    end_time = Column(String(5), nullable=False)     # HH:MM
    timezone = Column(String(64), nullable=False)    # Ex: "Europe/Brussels"
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)

    total_students = Column(Integer, nullable=False, default=0)  # 0 = effectif inconnu
    status = Column(String(20), nullable=False, default="scheduled")  # scheduled, ongoing, completed, cancelled
    attendance_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # QR code courant (pas de FK : référence circulaire avec qr_codes.lecture_id)
    qr_code_id = Column(Uuid, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
