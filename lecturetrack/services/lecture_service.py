"""
Service métier pour la gestion des cours et la consultation des présences.

Enseignant : liste, rapport de présences, modification, désactivation,
correction manuelle des statuts.
Étudiant : historique paginé avec statistiques, détail d'une présence,
taux de présence par unité.
"""

import math
import uuid
import datetime as dt
import logging
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from lecturetrack.errors import AuthorizationError, NotFoundError, ValidationError
from lecturetrack.models.attendance import Attendance
from lecturetrack.models.lecture import Lecture
from lecturetrack.models.qr_code import QRCode
from lecturetrack.schemas.attendance import (
    ATTENDANCE_STATUSES,
    AttendanceResponse,
    AttendanceStats,
    AttendanceStatusOverride,
    LectureAttendanceEntry,
    LectureAttendanceReport,
    StudentAttendanceDetail,
    StudentAttendanceHistory,
    StudentAttendanceItem,
    UnitAttendance,
)
from lecturetrack.schemas.lecture import (
    LectureListResponse,
    LectureResponse,
    LectureUpdate,
    Pagination,
)
from lecturetrack.schemas.qr_code import QrCodeResponse
from lecturetrack.services import qr_service, time_policy
from lecturetrack.services.time_policy import LATE, PRESENT, as_utc, utcnow

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = {"date", "start_time", "end_time"}

# Statut effectif : la correction manuelle prime sur le statut calculé au scan
EFFECTIVE_STATUS = func.coalesce(Attendance.override_status, Attendance.status)

STUDENT_SORT_COLUMNS = {
    "scanned_at": Attendance.scanned_at,
    "date": Lecture.date,
    "unit_code": Lecture.unit_code,
    "status": EFFECTIVE_STATUS,
}


def list_lectures(
    db: Session,
    lecturer_id: uuid.UUID,
    status: Optional[str] = None,
    unit_code: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    page: int = 1,
    limit: int = 20,
) -> LectureListResponse:
    """Retourne les cours actifs de l'enseignant, du plus récent au plus ancien, paginés."""
    conditions = [Lecture.lecturer_id == lecturer_id, Lecture.is_active.is_(True)]
    if status:
        conditions.append(Lecture.status == status)
    if unit_code:
        conditions.append(Lecture.unit_code.ilike(f"%{unit_code}%"))
    if start_date:
        conditions.append(Lecture.date >= start_date)
    if end_date:
        conditions.append(Lecture.date <= end_date)

    total = db.execute(
        select(func.count()).select_from(Lecture).where(*conditions)
    ).scalar() or 0

    lectures = db.execute(
        select(Lecture)
        .where(*conditions)
        .order_by(Lecture.date.desc(), Lecture.start_time.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return LectureListResponse(
        lectures=[_to_response(lecture) for lecture in lectures],
        pagination=_pagination(page, limit, total),
    )


def get_lecture_attendance(
    db: Session,
    lecture_id: uuid.UUID,
    lecturer_id: uuid.UUID,
) -> LectureAttendanceReport:
    """
    Retourne les présences d'un cours triées par heure de scan,
    avec le décompte par statut effectif et l'état du QR code courant.
    """
    lecture = _get_active_owned_lecture(db, lecture_id, lecturer_id)

    attendances = db.execute(
        select(Attendance)
        .where(Attendance.lecture_id == lecture_id)
        .order_by(Attendance.scanned_at)
    ).scalars().all()

    qr_code = db.get(QRCode, lecture.qr_code_id) if lecture.qr_code_id else None

    return LectureAttendanceReport(
        lecture=_to_response(lecture),
        qr_code=QrCodeResponse.model_validate(qr_code) if qr_code else None,
        attendances=[LectureAttendanceEntry.model_validate(a) for a in attendances],
        status_counts=_status_counts(db, Attendance.lecture_id == lecture_id),
        total=len(attendances),
        attendance_rate=_rate(len(attendances), lecture.total_students),
    )


def update_lecture(
    db: Session,
    lecture_id: uuid.UUID,
    lecturer_id: uuid.UUID,
    data: LectureUpdate,
) -> LectureResponse:
    """
    Met à jour les champs fournis d'un cours actif.
    Si l'horaire change, starts_at / ends_at sont recalculés dans le fuseau du cours.
    """
    lecture = _get_active_owned_lecture(db, lecture_id, lecturer_id)

    update_data = data.model_dump(exclude_unset=True)
    if SCHEDULE_FIELDS & update_data.keys():
        lecture.starts_at, lecture.ends_at = time_policy.lecture_bounds(
            update_data.get("date", lecture.date),
            update_data.get("start_time", lecture.start_time),
            update_data.get("end_time", lecture.end_time),
            lecture.timezone,
        )
    for field, value in update_data.items():
        setattr(lecture, field, value)

    db.commit()
    db.refresh(lecture)
    return _to_response(lecture)


def deactivate_lecture(db: Session, lecture_id: uuid.UUID, lecturer_id: uuid.UUID) -> None:
    """
    Désactive un cours (suppression logique, status → cancelled)
    et fait expirer son QR code. Les présences sont conservées.
    """
    lecture = qr_service.get_owned_lecture(db, lecture_id, lecturer_id)

    lecture.is_active = False
    lecture.status = "cancelled"
    if lecture.qr_code_id:
        qr_service.revoke_by_id(db, lecture.qr_code_id, utcnow())
    db.commit()
    logger.info("Cours %s désactivé", lecture_id)


def override_attendance_status(
    db: Session,
    attendance_id: uuid.UUID,
    lecturer_id: uuid.UUID,
    data: AttendanceStatusOverride,
) -> AttendanceResponse:
    """
    Corrige manuellement le statut d'une présence.
    Le statut calculé au scan est conservé ; la correction est stockée à part.
    """
    attendance = db.get(Attendance, attendance_id)
    if attendance is None:
        raise NotFoundError("Présence introuvable.")

    lecture = db.get(Lecture, attendance.lecture_id)
    if lecture is None or lecture.lecturer_id != lecturer_id:
        raise AuthorizationError("Accès refusé à cette présence.")

    attendance.override_status = data.status
    if data.notes:
        attendance.override_notes = data.notes
    attendance.overridden_by = lecturer_id
    attendance.overridden_at = utcnow()
    attendance.is_verified = False

    db.commit()
    db.refresh(attendance)
    logger.info(
        "Présence %s corrigée : %s → %s", attendance_id, attendance.status, data.status,
    )
    return AttendanceResponse.model_validate(attendance)


def list_student_attendances(
    db: Session,
    student_id: uuid.UUID,
    status: Optional[str] = None,
    unit_code: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
    sort_by: str = "scanned_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 20,
) -> StudentAttendanceHistory:
    """
    Historique des présences d'un étudiant, filtré et paginé.

    - status : statut effectif
    - start_date / end_date : date du cours, bornes incluses
    - stats : décompte sur l'ensemble des présences de l'étudiant, sans filtre
    """
    if sort_by not in STUDENT_SORT_COLUMNS:
        raise ValidationError(f"Tri invalide. Valeurs acceptées : {sorted(STUDENT_SORT_COLUMNS)}")
    if sort_order not in ("asc", "desc"):
        raise ValidationError("Ordre de tri invalide (asc ou desc).")

    conditions = [Attendance.student_id == student_id]
    if status:
        conditions.append(EFFECTIVE_STATUS == status)
    if unit_code:
        conditions.append(Lecture.unit_code.ilike(f"%{unit_code}%"))
    if start_date:
        conditions.append(Lecture.date >= start_date)
    if end_date:
        conditions.append(Lecture.date <= end_date)

    total = db.execute(
        select(func.count())
        .select_from(Attendance)
        .join(Lecture, Lecture.id == Attendance.lecture_id)
        .where(*conditions)
    ).scalar() or 0

    column = STUDENT_SORT_COLUMNS[sort_by]
    rows = db.execute(
        select(Attendance, Lecture)
        .join(Lecture, Lecture.id == Attendance.lecture_id)
        .where(*conditions)
        .order_by(column.desc() if sort_order == "desc" else column.asc(), Attendance.scanned_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    counts = _status_counts(db, Attendance.student_id == student_id)
    return StudentAttendanceHistory(
        attendances=[_to_student_item(attendance, lecture) for attendance, lecture in rows],
        pagination=_pagination(page, limit, total),
        stats=AttendanceStats(total=sum(counts.values()), **counts),
    )


def get_student_attendance(
    db: Session,
    attendance_id: uuid.UUID,
    student_id: uuid.UUID,
) -> StudentAttendanceDetail:
    """Détail d'une présence de l'étudiant. NotFoundError si elle n'existe pas ou appartient à un autre."""
    attendance = db.get(Attendance, attendance_id)
    if attendance is None or attendance.student_id != student_id:
        raise NotFoundError("Présence introuvable.")
    lecture = db.get(Lecture, attendance.lecture_id)

    item = _to_student_item(attendance, lecture)
    return StudentAttendanceDetail(
        **item.model_dump(),
        description=lecture.description,
        computed_status=attendance.status,
        override_notes=attendance.override_notes,
        overridden_at=attendance.overridden_at,
        is_verified=attendance.is_verified,
    )


def get_student_units(db: Session, student_id: uuid.UUID) -> list[UnitAttendance]:
    """
    Taux de présence par unité d'enseignement, calculé sur les présences enregistrées.
    Sont comptées comme suivies les présences au statut effectif present ou late.
    """
    attended = func.sum(case((EFFECTIVE_STATUS.in_([PRESENT, LATE]), 1), else_=0))
    rows = db.execute(
        select(
            Lecture.unit_code,
            Lecture.unit_name,
            func.count(Attendance.id),
            attended,
            func.max(Attendance.scanned_at),
        )
        .select_from(Attendance)
        .join(Lecture, Lecture.id == Attendance.lecture_id)
        .where(Attendance.student_id == student_id)
        .group_by(Lecture.unit_code, Lecture.unit_name)
        .order_by(Lecture.unit_code)
    ).all()

    return [
        UnitAttendance(
            unit_code=unit_code,
            unit_name=unit_name,
            total_classes=total,
            attended_classes=int(attended_count or 0),
            attendance_percentage=_rate(int(attended_count or 0), total),
            last_attendance=as_utc(last) if last else None,
        )
        for unit_code, unit_name, total, attended_count, last in rows
    ]


def _get_active_owned_lecture(db: Session, lecture_id: uuid.UUID, lecturer_id: uuid.UUID) -> Lecture:
    lecture = qr_service.get_owned_lecture(db, lecture_id, lecturer_id)
    if not lecture.is_active:
        raise NotFoundError(f"Cours {lecture_id} introuvable.")
    return lecture


def _status_counts(db: Session, *conditions) -> dict[str, int]:
    """Décompte des présences par statut effectif (tous les statuts présents, 0 par défaut)."""
    counts = {status: 0 for status in ATTENDANCE_STATUSES}
    rows = db.execute(
        select(EFFECTIVE_STATUS, func.count())
        .select_from(Attendance)
        .where(*conditions)
        .group_by(EFFECTIVE_STATUS)
    ).all()
    for status, count in rows:
        counts[status] = count
    return counts


def _pagination(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def _rate(count: int, total_students: int) -> float:
    if not total_students:
        return 0.0
    return round(count / total_students * 100, 2)


def _to_student_item(attendance: Attendance, lecture: Lecture) -> StudentAttendanceItem:
    return StudentAttendanceItem(
        id=attendance.id,
        lecture_id=lecture.id,
        unit_name=lecture.unit_name,
        unit_code=lecture.unit_code,
        venue=lecture.venue,
        lecturer_name=lecture.lecturer_name,
        date=lecture.date,
        start_time=lecture.start_time,
        end_time=lecture.end_time,
        scanned_at=attendance.scanned_at,
        status=attendance.effective_status,
    )


def _to_response(lecture: Lecture) -> LectureResponse:
    """Construit le schéma de réponse avec le taux de présence."""
    response = LectureResponse.model_validate(lecture)
    response.attendance_rate = _rate(lecture.attendance_count, lecture.total_students)
    return response
