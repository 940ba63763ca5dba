"""
Service d'émission et de révocation des QR codes de présence.

Flux d'émission :
  1. Créer le cours (statut ongoing)
  2. Générer un code aléatoire non devinable (secrets.token_urlsafe)
  3. Créer le QR code : expiration = maintenant + durée, budget = effectif du cours
  4. Lier cours ↔ QR code et committer en une seule transaction
     (jamais de cours sans QR code visible en base)
"""

import io
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional

import qrcode
from qrcode.constants import ERROR_CORRECT_H
from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lecturetrack.config import settings
from lecturetrack.errors import AuthorizationError, ConflictError, NotFoundError, PersistenceError
from lecturetrack.models.lecture import Lecture
from lecturetrack.models.qr_code import QRCode
from lecturetrack.schemas.lecture import LectureCreate, LectureDetails
from lecturetrack.schemas.qr_code import QrIssueResponse, QrPayload, QrUsageStats
from lecturetrack.services import time_policy
from lecturetrack.services.time_policy import as_utc, utcnow

logger = logging.getLogger(__name__)


def _generate_unique_code() -> str:
    """Code non séquentiel, non devinable (256 bits d'aléa)."""
    return secrets.token_urlsafe(32)


def build_payload(lecture: Lecture, qr_code: QRCode) -> str:
    """Sérialise le contenu du QR code en JSON compact."""
    return QrPayload(
        lecture_id=lecture.id,
        code=qr_code.unique_code,
        expires_at=as_utc(qr_code.expires_at),
        unit_code=lecture.unit_code,
        unit_name=lecture.unit_name,
    ).model_dump_json()


def render_qr_image(payload: str) -> bytes:
    """Génère une image PNG du QR code encodant le payload donné."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_H,
        box_size=settings.QR_CODE_BOX_SIZE,
        border=1,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def is_live(qr_code: QRCode, now: datetime) -> bool:
    """Actif, non expiré et budget de scans non épuisé."""
    return (
        qr_code.is_active
        and as_utc(qr_code.expires_at) > now
        and qr_code.scan_count < qr_code.max_scans
    )


def get_owned_lecture(db: Session, lecture_id: uuid.UUID, lecturer_id: uuid.UUID) -> Lecture:
    """
    Retourne le cours s'il appartient à l'enseignant.
    Lève NotFoundError si introuvable, AuthorizationError sinon.
    """
    lecture = db.get(Lecture, lecture_id)
    if lecture is None:
        raise NotFoundError(f"Cours {lecture_id} introuvable.")
    if lecture.lecturer_id != lecturer_id:
        raise AuthorizationError("Accès refusé : ce cours appartient à un autre enseignant.")
    return lecture


def issue_qr_code(
    db: Session,
    data: LectureCreate,
    lecturer_id: uuid.UUID,
    lecturer_name: str = "",
    now: Optional[datetime] = None,
) -> QrIssueResponse:
    """
    Crée un cours et son QR code.

    - budget de scans = effectif du cours, ou DEFAULT_MAX_SCANS si inconnu (0)
    - durée de validité = data.duration, ou QR_CODE_DURATION par défaut

    Lève PersistenceError si l'écriture échoue (rollback complet).
    """
    now = as_utc(now) if now else utcnow()
    tz_name = data.timezone or settings.TIMEZONE
    starts_at, ends_at = time_policy.lecture_bounds(data.date, data.start_time, data.end_time, tz_name)
    duration = data.duration or settings.QR_CODE_DURATION

    lecture = Lecture(
        id=uuid.uuid4(),
        lecturer_id=lecturer_id,
        lecturer_name=lecturer_name,
        unit_name=data.unit_name,
        unit_code=data.unit_code,
        venue=data.venue,
        description=data.description,
        date=data.date,
        start_time=data.start_time,
        end_time=data.end_time,
        timezone=tz_name,
        starts_at=starts_at,
        ends_at=ends_at,
        total_students=data.total_students or 0,
        status="ongoing",
        attendance_count=0,
        is_active=True,
    )
    qr_code = QRCode(
        id=uuid.uuid4(),
        lecture_id=lecture.id,
        unique_code=_generate_unique_code(),
        expires_at=now + timedelta(minutes=duration),
        is_active=True,
        scan_count=0,
        max_scans=data.total_students or settings.DEFAULT_MAX_SCANS,
    )
    lecture.qr_code_id = qr_code.id

    try:
        db.add(lecture)
        db.add(qr_code)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Échec de création du cours %s : %s", data.unit_code, exc)
        raise PersistenceError("Impossible de créer le cours et son QR code.") from exc

    logger.info(
        "QR code émis : cours %s (%s), %d scans max, expire à %s",
        lecture.unit_code, lecture.id, qr_code.max_scans, qr_code.expires_at,
    )
    return _to_issue_response(lecture, qr_code)


def reissue_qr_code(
    db: Session,
    lecture_id: uuid.UUID,
    lecturer_id: uuid.UUID,
    duration: Optional[int] = None,
    now: Optional[datetime] = None,
) -> QrIssueResponse:
    """
    Réémet un QR code pour un cours existant.

    Idempotent tant que le QR code courant est utilisable : il est renvoyé tel quel.
    Sinon un nouveau code est créé avec le budget restant (effectif − présences).
    Lève ConflictError si l'effectif est déjà atteint.
    """
    now = as_utc(now) if now else utcnow()
    if duration is not None:
        time_policy.check_qr_duration(duration)
    lecture = get_owned_lecture(db, lecture_id, lecturer_id)
    if not lecture.is_active:
        raise NotFoundError(f"Cours {lecture_id} introuvable.")

    current = db.get(QRCode, lecture.qr_code_id) if lecture.qr_code_id else None
    if current is not None and is_live(current, now):
        return _to_issue_response(lecture, current)

    capacity = lecture.total_students or settings.DEFAULT_MAX_SCANS
    remaining = capacity - lecture.attendance_count
    if remaining <= 0:
        raise ConflictError("Effectif du cours déjà atteint.", reason="capacity_reached")

    qr_code = QRCode(
        id=uuid.uuid4(),
        lecture_id=lecture.id,
        unique_code=_generate_unique_code(),
        expires_at=now + timedelta(minutes=duration or settings.QR_CODE_DURATION),
        is_active=True,
        scan_count=0,
        max_scans=remaining,
    )
    if current is not None and current.is_active:
        current.is_active = False
    lecture.qr_code_id = qr_code.id

    try:
        db.add(qr_code)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError("Impossible de réémettre le QR code.") from exc

    logger.info("QR code réémis : cours %s, %d scans restants", lecture.id, remaining)
    return _to_issue_response(lecture, qr_code)


def get_qr_code_for_owner(db: Session, code: str, lecturer_id: uuid.UUID) -> tuple[Lecture, QRCode]:
    """Retourne (cours, QR code) pour un code appartenant à l'enseignant."""
    qr_code = db.execute(select(QRCode).where(QRCode.unique_code == code)).scalar()
    if qr_code is None:
        raise NotFoundError("QR code introuvable.")
    lecture = get_owned_lecture(db, qr_code.lecture_id, lecturer_id)
    return lecture, qr_code


def revoke_qr_code(
    db: Session,
    code: str,
    lecturer_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Désactive un QR code et le fait expirer immédiatement (pas de suppression).

    Idempotent : un code déjà inactif n'est pas modifié.
    Lève NotFoundError si le code est inconnu.
    """
    now = as_utc(now) if now else utcnow()
    if lecturer_id is not None:
        _, qr_code = get_qr_code_for_owner(db, code, lecturer_id)
    else:
        qr_code = db.execute(select(QRCode).where(QRCode.unique_code == code)).scalar()
        if qr_code is None:
            raise NotFoundError("QR code introuvable.")

    revoke_by_id(db, qr_code.id, now)
    db.commit()


def revoke_by_id(db: Session, qr_code_id: uuid.UUID, now: datetime) -> bool:
    """
    UPDATE conditionnel : ne touche que les codes encore actifs. Ne commite pas.
    Un code déjà expiré garde son heure d'expiration d'origine.
    """
    result = db.execute(
        update(QRCode)
        .where(QRCode.id == qr_code_id, QRCode.is_active.is_(True))
        .values(
            is_active=False,
            expires_at=case((QRCode.expires_at > now, now), else_=QRCode.expires_at),
            revoked_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    revoked = result.rowcount == 1
    if revoked:
        logger.info("QR code %s révoqué", qr_code_id)
    return revoked


def get_usage_stats(
    db: Session,
    lecturer_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> QrUsageStats:
    """
    Statistiques des QR codes des cours d'un enseignant (tous si lecturer_id est None).
    Lecture seule.
    """
    now = as_utc(now) if now else utcnow()
    query = (
        select(
            func.count(QRCode.id),
            func.coalesce(
                func.sum(case((and_(QRCode.is_active.is_(True), QRCode.expires_at > now), 1), else_=0)),
                0,
            ),
            func.coalesce(func.sum(QRCode.scan_count), 0),
        )
        .select_from(QRCode)
        .join(Lecture, Lecture.id == QRCode.lecture_id)
    )
    if lecturer_id is not None:
        query = query.where(Lecture.lecturer_id == lecturer_id)

    total, active, scans = db.execute(query).one()
    total, active, scans = int(total or 0), int(active or 0), int(scans or 0)

    return QrUsageStats(
        total_qr_codes=total,
        active_qr_codes=active,
        total_scans=scans,
        average_scans=round(scans / total, 2) if total else 0.0,
    )


def _to_issue_response(lecture: Lecture, qr_code: QRCode) -> QrIssueResponse:
    return QrIssueResponse(
        lecture_id=lecture.id,
        qr_code_id=qr_code.id,
        unique_code=qr_code.unique_code,
        expires_at=as_utc(qr_code.expires_at),
        max_scans=qr_code.max_scans,
        lecture=LectureDetails.model_validate(lecture),
        payload=build_payload(lecture, qr_code),
    )
