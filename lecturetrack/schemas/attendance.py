"""
Schémas Pydantic pour la consultation et la correction des présences :
rapport d'un cours (enseignant), historique et unités (étudiant).

Note : on importe datetime en tant que module (dt) pour éviter le conflit de nommage
entre le champ `date` et le type `datetime.date` dans Pydantic v2.
"""

import uuid
import datetime as dt
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from lecturetrack.schemas.lecture import LectureResponse, Pagination
from lecturetrack.schemas.qr_code import QrCodeResponse
from lecturetrack.services.time_policy import ABSENT, EXCUSED, LATE, PRESENT

ATTENDANCE_STATUSES = (PRESENT, LATE, ABSENT, EXCUSED)
VALID_ATTENDANCE_STATUSES = set(ATTENDANCE_STATUSES)


class AttendanceStatusOverride(BaseModel):
    """Correction manuelle du statut d'une présence par l'enseignant."""
    status: str
    notes: Optional[str] = Field(default=None, max_length=200)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in VALID_ATTENDANCE_STATUSES:
            raise ValueError(f"Statut invalide. Valeurs acceptées : {VALID_ATTENDANCE_STATUSES}")
        return v


class AttendanceResponse(BaseModel):
    id: uuid.UUID
    student_id: uuid.UUID
    lecture_id: uuid.UUID
    qr_code_id: uuid.UUID
    scanned_at: datetime
    status: str
    override_status: Optional[str]
    override_notes: Optional[str]
    overridden_by: Optional[uuid.UUID]
    overridden_at: Optional[datetime]
    effective_status: str
    is_verified: bool

    model_config = {"from_attributes": True}


# --- Rapport d'un cours (enseignant) ---

class LectureAttendanceEntry(BaseModel):
    """Présence d'un étudiant dans le rapport d'un cours."""
    id: uuid.UUID
    student_id: uuid.UUID
    scanned_at: datetime
    status: str
    override_status: Optional[str]
    effective_status: str
    is_verified: bool

    model_config = {"from_attributes": True}


class LectureAttendanceReport(BaseModel):
    """Présences d'un cours avec décompte par statut effectif et état du QR code courant."""
    lecture: LectureResponse
    qr_code: Optional[QrCodeResponse] = None
    attendances: List[LectureAttendanceEntry]
    status_counts: Dict[str, int]
    total: int
    attendance_rate: float


# --- Historique de l'étudiant ---

class StudentAttendanceItem(BaseModel):
    """Ligne de l'historique de présences d'un étudiant."""
    id: uuid.UUID
    lecture_id: uuid.UUID
    unit_name: str
    unit_code: str
    venue: str
    lecturer_name: str
    date: dt.date
    start_time: str
    end_time: str
    scanned_at: datetime
    status: str


class StudentAttendanceDetail(StudentAttendanceItem):
    """Détail d'une présence : ajoute la description du cours et l'historique de correction."""
    description: Optional[str] = None
    computed_status: str
    override_notes: Optional[str] = None
    overridden_at: Optional[datetime] = None
    is_verified: bool


class AttendanceStats(BaseModel):
    """Décompte des présences d'un étudiant par statut effectif."""
    total: int = 0
    present: int = 0
    late: int = 0
    absent: int = 0
    excused: int = 0


class StudentAttendanceHistory(BaseModel):
    attendances: List[StudentAttendanceItem]
    pagination: Pagination
    stats: AttendanceStats


class UnitAttendance(BaseModel):
    """Taux de présence d'un étudiant pour une unité d'enseignement."""
    unit_code: str
    unit_name: str
    total_classes: int
    attended_classes: int  # present ou late
    attendance_percentage: float
    last_attendance: Optional[datetime] = None
