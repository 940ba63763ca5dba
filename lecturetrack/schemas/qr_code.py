"""
Schémas Pydantic pour les QR codes de présence.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from lecturetrack.schemas.lecture import LectureDetails
from lecturetrack.services import time_policy


class QrPayload(BaseModel):
    """
    Contenu encodé dans l'image du QR code.
    Sérialisé en JSON compact : le client scanne puis renvoie `code`.
    """
    lecture_id: uuid.UUID
    code: str
    expires_at: datetime
    unit_code: str
    unit_name: str


class QrIssueResponse(BaseModel):
    """Réponse après émission (ou réémission) d'un QR code."""
    lecture_id: uuid.UUID
    qr_code_id: uuid.UUID
    unique_code: str
    expires_at: datetime
    max_scans: int
    lecture: LectureDetails
    payload: str  # QrPayload sérialisé, transmis au générateur d'image


class QrReissueRequest(BaseModel):
    duration: Optional[int] = None  # minutes, mêmes bornes qu'à l'émission

    @field_validator("duration")
    @classmethod
    def valid_duration(cls, v: Optional[int]) -> Optional[int]:
        return time_policy.check_qr_duration(v) if v is not None else v


class QrCodeResponse(BaseModel):
    """État du QR code courant d'un cours, affiché dans le rapport de présences."""
    id: uuid.UUID
    lecture_id: uuid.UUID
    unique_code: str
    expires_at: datetime
    is_active: bool
    scan_count: int
    max_scans: int
    revoked_at: Optional[datetime]

    model_config = {"from_attributes": True}


class QrUsageStats(BaseModel):
    """Statistiques d'utilisation des QR codes d'un enseignant."""
    total_qr_codes: int
    active_qr_codes: int
    total_scans: int
    average_scans: float
