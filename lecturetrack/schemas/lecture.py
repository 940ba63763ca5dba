"""
Schémas Pydantic pour les cours et l'émission des QR codes.

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from lecturetrack.config import settings
from lecturetrack.services import time_policy

VALID_LECTURE_STATUSES = {"scheduled", "ongoing", "completed", "cancelled"}


def _not_empty(v: str) -> str:
    if not v.strip():
        raise ValueError("Le champ ne peut pas être vide.")
    return v.strip()


class LectureCreate(BaseModel):
    """Corps de requête pour créer un cours et son QR code."""
    unit_name: str
    unit_code: str
    date: dt.date
    start_time: str  # HH:MM
    end_time: str    # HH:MM
    venue: str
    total_students: Optional[int] = Field(default=None, ge=0)
    duration: Optional[int] = None  # minutes de validité du QR code
    description: Optional[str] = Field(default=None, max_length=500)
    timezone: Optional[str] = None

    @field_validator("unit_name", "venue")
    @classmethod
    def not_empty(cls, v: str) -> str:
        return _not_empty(v)

    @field_validator("unit_code")
    @classmethod
    def unit_code_upper(cls, v: str) -> str:
        return _not_empty(v).upper()

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, v: str) -> str:
        time_policy.parse_time(v)
        return v.strip()

    @field_validator("duration")
    @classmethod
    def valid_duration(cls, v: Optional[int]) -> Optional[int]:
        return time_policy.check_qr_duration(v) if v is not None else v

    @model_validator(mode="after")
    def valid_schedule(self) -> "LectureCreate":
        # Vérifie le fuseau et l'ordre début < fin
        time_policy.lecture_bounds(self.date, self.start_time, self.end_time, self.timezone or settings.TIMEZONE)
        return self


class LectureUpdate(BaseModel):
    """Mise à jour partielle d'un cours. Le propriétaire et le QR code ne sont pas modifiables."""
    unit_name: Optional[str] = None
    unit_code: Optional[str] = None
    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    venue: Optional[str] = None
    total_students: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=500)
    status: Optional[str] = None

    # Seule la description peut être effacée : null explicite refusé pour les colonnes obligatoires
    @field_validator(
        "unit_name", "unit_code", "date", "start_time", "end_time", "venue", "total_students", "status",
        mode="before",
    )
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("Ce champ ne peut pas être nul.")
        return v

    @field_validator("unit_name", "venue")
    @classmethod
    def not_empty(cls, v: Optional[str]) -> Optional[str]:
        return _not_empty(v) if v is not None else v

    @field_validator("unit_code")
    @classmethod
    def unit_code_upper(cls, v: Optional[str]) -> Optional[str]:
        return _not_empty(v).upper() if v is not None else v

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            time_policy.parse_time(v)
            return v.strip()
        return v

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_LECTURE_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_LECTURE_STATUSES}")
        return v


class LectureDetails(BaseModel):
    """Métadonnées du cours affichées côté client."""
    unit_name: str
    unit_code: str
    date: dt.date
    start_time: str
    end_time: str
    venue: str

    model_config = {"from_attributes": True}


class LectureResponse(BaseModel):
    id: uuid.UUID
    lecturer_id: uuid.UUID
    lecturer_name: str
    unit_name: str
    unit_code: str
    venue: str
    description: Optional[str]
    date: dt.date
    start_time: str
    end_time: str
    timezone: str
    starts_at: datetime
    ends_at: datetime
    total_students: int
    status: str
    attendance_count: int
    attendance_rate: float = 0.0
    is_active: bool
    qr_code_id: Optional[uuid.UUID]
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class LectureListResponse(BaseModel):
    lectures: List[LectureResponse]
    pagination: Pagination
