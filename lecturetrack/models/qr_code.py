"""
Modèle SQLAlchemy pour les QR codes de présence.

Invariant : scan_count <= max_scans. L'UPDATE qui atteint la limite
désactive le code dans la même instruction (voir scan_service).
"""

import uuid
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Uuid, func

from lecturetrack.database import Base


class QRCode(Base):
    __tablename__ = "qr_codes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    lecture_id = Column(Uuid, ForeignKey("lectures.id", ondelete="CASCADE"), nullable=False, index=True)
    unique_code = Column(String(64), unique=True, nullable=False)  # secrets.token_urlsafe(32)

    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    scan_count = Column(Integer, nullable=False, default=0)
    max_scans = Column(Integer, nullable=False, default=100)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
