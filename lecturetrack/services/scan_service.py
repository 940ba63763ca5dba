"""
Service de scan des QR codes et d'enregistrement des présences.

Deux étapes :
- validate_scan : pré-contrôle en lecture seule (réponse rapide à l'étudiant).
  Les contrôles sont ordonnés : le doublon est détecté avant toute consommation
  du budget de scans.
- record_attendance : décision définitive, dans une seule transaction :
    1. UPDATE conditionnel du compteur du QR code (incrément seulement si
       actif, non expiré et sous la limite ; désactivation à la limite)
    2. INSERT de la présence (unicité étudiant/cours garantie par la base)
    3. incrément atomique du compteur du cours
  Aucun compteur n'est lu puis réécrit côté application.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from lecturetrack.config import settings
from lecturetrack.errors import (
    ConflictError,
    ExpiredOrExhaustedError,
    PersistenceError,
    ValidationError,
)
from lecturetrack.models.attendance import Attendance
from lecturetrack.models.lecture import Lecture
from lecturetrack.models.qr_code import QRCode
from lecturetrack.schemas.scan import (
    AttendanceSummary,
    DeviceInfo,
    RejectReason,
    ScanAccepted,
    ScanRejected,
    ScanRequest,
    ScanResult,
    ScanValidation,
)
from lecturetrack.services import time_policy
from lecturetrack.services.time_policy import as_utc, utcnow

logger = logging.getLogger(__name__)


def validate_scan(
    db: Session,
    code: str,
    student_id: uuid.UUID,
    now: Optional[datetime] = None,
    scanned_at: Optional[datetime] = None,
) -> ScanValidation:
    """
    Vérifie qu'un scan peut être accepté, sans rien modifier.

    Ordre des contrôles (arrêt au premier échec) :
    1. QR code existant, actif, non expiré, budget non épuisé
    2. Cours existant et actif
    3. Pas de présence déjà enregistrée pour cet étudiant sur ce cours
    4. Heure du scan dans la fenêtre [début − 30 min, fin + 15 min]
    """
    now = as_utc(now) if now else utcnow()
    scanned_at = as_utc(scanned_at) if scanned_at else now

    # 1. QR code utilisable
    qr_code = db.execute(
        select(QRCode).where(
            QRCode.unique_code == code,
            QRCode.is_active.is_(True),
            QRCode.expires_at > now,
            QRCode.scan_count < QRCode.max_scans,
        )
    ).scalar()
    if qr_code is None:
        return ScanRejected(RejectReason.INVALID_EXPIRED_OR_EXHAUSTED)

    # 2. Cours disponible
    lecture = db.get(Lecture, qr_code.lecture_id)
    if lecture is None or not lecture.is_active:
        return ScanRejected(RejectReason.SESSION_UNAVAILABLE)

    # 3. Doublon
    existing = db.execute(
        select(Attendance.id).where(
            Attendance.student_id == student_id,
            Attendance.lecture_id == lecture.id,
        )
    ).scalar()
    if existing is not None:
        return ScanRejected(RejectReason.ALREADY_RECORDED)

    # 4. Fenêtre horaire
    if not time_policy.is_within_scan_window(scanned_at, lecture.starts_at, lecture.ends_at):
        return ScanRejected(RejectReason.OUTSIDE_SCAN_WINDOW)

    return ScanAccepted(lecture=lecture, qr_code=qr_code)


def record_attendance(
    db: Session,
    accepted: ScanAccepted,
    student_id: uuid.UUID,
    device_info: Optional[DeviceInfo] = None,
    scanned_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> AttendanceSummary:
    """
    Enregistre une présence après un pré-contrôle accepté.

    Lève ExpiredOrExhaustedError si le budget a été consommé entre-temps,
    ConflictError si une présence concurrente du même étudiant a gagné.
    Dans les deux cas la transaction est annulée : aucun scan n'est consommé.
    """
    now = as_utc(now) if now else utcnow()
    scanned_at = as_utc(scanned_at) if scanned_at else now
    lecture, qr_code = accepted.lecture, accepted.qr_code
    lecture_id, qr_code_id = lecture.id, qr_code.id

    status = time_policy.classify_scan(scanned_at, lecture.starts_at, lecture.ends_at)

    try:
        # 1. Consommation atomique du budget (SET évalué sur les valeurs avant mise à jour)
        consumed = db.execute(
            update(QRCode)
            .where(
                QRCode.id == qr_code_id,
                QRCode.is_active.is_(True),
                QRCode.expires_at > now,
                QRCode.scan_count < QRCode.max_scans,
            )
            .values(
                scan_count=QRCode.scan_count + 1,
                is_active=case((QRCode.scan_count + 1 >= QRCode.max_scans, False), else_=QRCode.is_active),
            )
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            db.rollback()
            raise ExpiredOrExhaustedError("QR code expiré ou nombre maximal de scans atteint.")

        # 2. Présence : la contrainte uq_attendances_student_lecture départage les doublons
        attendance = Attendance(
            id=uuid.uuid4(),
            student_id=student_id,
            lecture_id=lecture_id,
            qr_code_id=qr_code_id,
            scanned_at=scanned_at,
            status=status,
            device_info=device_info.model_dump(exclude_none=True) if device_info else None,
            is_verified=True,
        )
        db.add(attendance)
        db.flush()

        # 3. Compteur du cours
        db.execute(
            update(Lecture)
            .where(Lecture.id == lecture_id)
            .values(attendance_count=Lecture.attendance_count + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Présence déjà enregistrée pour ce cours.", reason=RejectReason.ALREADY_RECORDED.value)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Échec d'enregistrement de la présence (cours %s) : %s", lecture_id, exc)
        raise PersistenceError("Impossible d'enregistrer la présence.") from exc

    logger.info("Présence enregistrée, étudiant %s, cours %s : %s", student_id, lecture_id, status)

    return AttendanceSummary(
        attendance_id=attendance.id,
        lecture_id=lecture_id,
        unit_name=lecture.unit_name,
        unit_code=lecture.unit_code,
        lecturer_name=lecture.lecturer_name,
        venue=lecture.venue,
        date=lecture.date,
        start_time=lecture.start_time,
        end_time=lecture.end_time,
        scanned_at=as_utc(scanned_at),
        status=status,
    )


def scan_qr_code(
    db: Session,
    data: ScanRequest,
    student_id: uuid.UUID,
    device_info: Optional[DeviceInfo] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    """
    Scan complet : pré-contrôle puis enregistrement.

    Un rejet métier (y compris une course perdue) est renvoyé dans le résultat,
    jamais levé. L'heure fournie par le client doit rester proche de l'heure serveur.
    """
    now = as_utc(now) if now else utcnow()
    scanned_at = now
    if data.scanned_at is not None:
        scanned_at = as_utc(data.scanned_at)
        if abs(scanned_at - now) > timedelta(seconds=settings.SCAN_CLOCK_SKEW_SECONDS):
            raise ValidationError("L'heure du scan est trop éloignée de l'heure du serveur.")

    validation = validate_scan(db, data.code, student_id, now=now, scanned_at=scanned_at)
    if isinstance(validation, ScanRejected):
        return _rejected(validation.reason, student_id)

    try:
        summary = record_attendance(
            db, validation, student_id,
            device_info=device_info or data.device_info,
            scanned_at=scanned_at,
            now=now,
        )
    except ConflictError:
        logger.warning("Scan concurrent en doublon rejeté, étudiant %s", student_id)
        return _rejected(RejectReason.ALREADY_RECORDED, student_id)
    except ExpiredOrExhaustedError:
        logger.warning("Budget de scans consommé par une requête concurrente, étudiant %s", student_id)
        return _rejected(RejectReason.INVALID_EXPIRED_OR_EXHAUSTED, student_id)

    return ScanResult(accepted=True, attendance=summary)


def _rejected(reason: RejectReason, student_id: uuid.UUID) -> ScanResult:
    rejected = ScanRejected(reason)
    logger.info("Scan rejeté, étudiant %s : %s", student_id, reason.value)
    return ScanResult(accepted=False, reason=reason, message=rejected.message)
