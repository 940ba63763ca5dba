"""
Router pour les présences : historique et unités de l'étudiant,
correction manuelle par l'enseignant.
"""

import uuid
import datetime as dt
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lecturetrack.auth import CurrentUser, require_role
from lecturetrack.database import get_db
from lecturetrack.schemas.attendance import (
    AttendanceResponse,
    AttendanceStatusOverride,
    StudentAttendanceDetail,
    StudentAttendanceHistory,
    UnitAttendance,
)
from lecturetrack.services import lecture_service

router = APIRouter(prefix="/api/v1/attendances", tags=["Présences"])

student_only = require_role("student")


@router.get("/me", response_model=StudentAttendanceHistory, summary="Mes présences")
def list_my_attendances(
    status: Optional[str] = None,
    unit_code: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    sort_by: Literal["scanned_at", "date", "unit_code", "status"] = "scanned_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(student_only),
):
    """
    Historique des présences de l'étudiant connecté.

    - Filtres : statut effectif, code d'unité, période (date du cours)
    - `stats` : décompte par statut sur l'ensemble de l'historique
    """
    return lecture_service.list_student_attendances(
        db, user.id,
        status=status, unit_code=unit_code,
        start_date=start_date, end_date=end_date,
        sort_by=sort_by, sort_order=sort_order,
        page=page, limit=limit,
    )


@router.get("/me/units", response_model=List[UnitAttendance], summary="Mes unités")
def list_my_units(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(student_only),
):
    """Taux de présence par unité d'enseignement (présent ou en retard = suivi)."""
    return lecture_service.get_student_units(db, user.id)


@router.get("/me/{attendance_id}", response_model=StudentAttendanceDetail, summary="Détail d'une présence")
def get_my_attendance(
    attendance_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(student_only),
):
    """Retourne une présence de l'étudiant connecté (404 si elle appartient à un autre étudiant)."""
    return lecture_service.get_student_attendance(db, attendance_id, user.id)


@router.put("/{attendance_id}/status", response_model=AttendanceResponse,
            summary="Corriger le statut d'une présence")
def override_attendance_status(
    attendance_id: uuid.UUID,
    data: AttendanceStatusOverride,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_role("lecturer")),
):
    """
    Correction manuelle (ex. absence justifiée → excused).
    Le statut calculé au scan est conservé à côté de la correction.
    """
    return lecture_service.override_attendance_status(db, attendance_id, user.id, data)
