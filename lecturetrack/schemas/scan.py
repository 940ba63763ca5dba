"""
Schémas pour le scan d'un QR code par un étudiant.

Le résultat d'un scan est discriminé : accepté (avec le résumé de présence)
ou rejeté avec un code de raison stable, distinct du message affiché.
"""

import uuid
import datetime as dt
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field, field_validator

if TYPE_CHECKING:
    from lecturetrack.models.lecture import Lecture
    from lecturetrack.models.qr_code import QRCode


class RejectReason(str, Enum):
    INVALID_EXPIRED_OR_EXHAUSTED = "invalid_expired_or_exhausted"
    SESSION_UNAVAILABLE = "session_unavailable"
    ALREADY_RECORDED = "already_recorded"
    OUTSIDE_SCAN_WINDOW = "outside_scan_window"


REJECT_MESSAGES = {
    RejectReason.INVALID_EXPIRED_OR_EXHAUSTED: "QR code invalide, expiré ou ayant atteint le nombre maximal de scans.",
    RejectReason.SESSION_UNAVAILABLE: "Ce cours n'est pas disponible.",
    RejectReason.ALREADY_RECORDED: "Présence déjà enregistrée pour ce cours.",
    RejectReason.OUTSIDE_SCAN_WINDOW: "Le QR code ne peut être scanné que pendant le cours (30 min avant, 15 min après).",
}


@dataclass(frozen=True)
class ScanAccepted:
    """Pré-contrôle réussi : cours et QR code résolus, transmis à l'enregistrement."""
    lecture: "Lecture"
    qr_code: "QRCode"


@dataclass(frozen=True)
class ScanRejected:
    reason: RejectReason

    @property
    def message(self) -> str:
        return REJECT_MESSAGES[self.reason]


ScanValidation = Union[ScanAccepted, ScanRejected]


class DeviceInfo(BaseModel):
    browser: Optional[str] = None
    os: Optional[str] = None
    device: Optional[str] = None
    user_agent: Optional[str] = None
    ip: Optional[str] = None


class ScanRequest(BaseModel):
    """Corps de requête envoyé par l'étudiant après lecture du QR code."""
    code: str
    scanned_at: Optional[datetime] = None  # défaut : heure serveur
    device_info: Optional[DeviceInfo] = None

    @field_validator("code")
    @classmethod
    def code_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le QR code est obligatoire.")
        return v.strip()


class AttendanceSummary(BaseModel):
    """Résumé renvoyé à l'étudiant juste après un scan accepté."""
    attendance_id: uuid.UUID
    lecture_id: uuid.UUID
    unit_name: str
    unit_code: str
    lecturer_name: str
    venue: str
    date: dt.date
    start_time: str
    end_time: str
    scanned_at: datetime
    status: str


class ScanResult(BaseModel):
    accepted: bool
    reason: Optional[RejectReason] = None
    message: Optional[str] = None
    attendance: Optional[AttendanceSummary] = Field(default=None)
