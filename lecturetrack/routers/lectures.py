"""
Router pour les cours de l'enseignant.
Création avec QR code, liste, modification, désactivation,
rapport de présences et réémission du QR code.
"""

import uuid
import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lecturetrack.auth import CurrentUser, require_role
from lecturetrack.database import get_db
from lecturetrack.schemas.attendance import LectureAttendanceReport
from lecturetrack.schemas.lecture import (
    LectureCreate,
    LectureListResponse,
    LectureResponse,
    LectureUpdate,
)
from lecturetrack.schemas.qr_code import QrIssueResponse, QrReissueRequest
from lecturetrack.services import lecture_service, qr_service

router = APIRouter(prefix="/api/v1/lectures", tags=["Cours"])

lecturer_only = require_role("lecturer")


@router.post("", response_model=QrIssueResponse, status_code=201,
             summary="Créer un cours et générer son QR code")
def create_lecture(
    data: LectureCreate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """
    Crée un cours (statut ongoing) et son QR code de présence.

    - Validité du QR code : `duration` minutes (défaut 60, entre 5 et 240)
    - Nombre maximal de scans : `total_students` (défaut 100)
    - Le payload retourné est destiné au générateur d'image
    """
    return qr_service.issue_qr_code(db, data, lecturer_id=user.id, lecturer_name=user.name)


@router.get("", response_model=LectureListResponse, summary="Lister mes cours")
def list_lectures(
    status: Optional[str] = None,
    unit_code: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """Retourne les cours actifs de l'enseignant, filtrables par statut, code d'unité et période."""
    return lecture_service.list_lectures(
        db, user.id,
        status=status, unit_code=unit_code,
        start_date=start_date, end_date=end_date,
        page=page, limit=limit,
    )


@router.put("/{lecture_id}", response_model=LectureResponse, summary="Modifier un cours")
def update_lecture(
    lecture_id: uuid.UUID,
    data: LectureUpdate,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """Met à jour les champs fournis. Le propriétaire et le QR code ne sont pas modifiables."""
    return lecture_service.update_lecture(db, lecture_id, user.id, data)


@router.delete("/{lecture_id}", status_code=204, summary="Désactiver un cours")
def deactivate_lecture(
    lecture_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """
    Désactive un cours (suppression logique, status → cancelled)
    et fait expirer immédiatement son QR code. Les présences sont conservées.
    """
    lecture_service.deactivate_lecture(db, lecture_id, user.id)


@router.get("/{lecture_id}/attendance", response_model=LectureAttendanceReport,
            summary="Présences d'un cours")
def get_lecture_attendance(
    lecture_id: uuid.UUID,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """Liste des présences triées par heure de scan, décompte par statut et taux de présence."""
    return lecture_service.get_lecture_attendance(db, lecture_id, user.id)


@router.post("/{lecture_id}/qr-code", response_model=QrIssueResponse, status_code=201,
             summary="Réémettre le QR code d'un cours")
def reissue_qr_code(
    lecture_id: uuid.UUID,
    data: Optional[QrReissueRequest] = None,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(lecturer_only),
):
    """
    Renvoie le QR code courant s'il est encore utilisable,
    sinon en génère un nouveau avec le budget de scans restant.
    """
    duration = data.duration if data else None
    return qr_service.reissue_qr_code(db, lecture_id, user.id, duration=duration)
