"""
Planificateur APScheduler pour le cycle de vie des cours.

Le job passe en `completed` les cours `scheduled` / `ongoing` dont la fenêtre
de scan est refermée (fin + 15 min). Aucune décision d'admission n'en dépend :
l'expiration des QR codes reste vérifiée à chaque scan par comparaison d'horodatages.
"""

import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import update
from sqlalchemy.orm import Session

from lecturetrack.config import settings
from lecturetrack.database import SessionLocal
from lecturetrack.models.lecture import Lecture
from lecturetrack.services.time_policy import SCAN_CLOSES_AFTER, as_utc, utcnow

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def complete_finished_lectures(db: Session, now: Optional[datetime] = None) -> int:
    """Marque comme terminés les cours dont la fenêtre de scan est close. Retourne le nombre de cours."""
    now = as_utc(now) if now else utcnow()
    result = db.execute(
        update(Lecture)
        .where(
            Lecture.status.in_(["scheduled", "ongoing"]),
            Lecture.is_active.is_(True),
            Lecture.ends_at < now - SCAN_CLOSES_AFTER,
        )
        .values(status="completed")
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount


def _complete_finished_lectures_scheduled() -> None:
    """Tâche planifiée : ouvre sa propre session BDD."""
    db = SessionLocal()
    try:
        count = complete_finished_lectures(db)
        if count:
            logger.info("%d cours passé(s) en statut completed", count)
    except Exception as exc:
        logger.error("Erreur lors de la clôture automatique des cours : %s", exc)
    finally:
        db.close()


def start_scheduler() -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        _complete_finished_lectures_scheduled,
        trigger="interval",
        minutes=settings.LIFECYCLE_SWEEP_MINUTES,
        id="lecture_lifecycle_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        "Scheduler démarré : clôture des cours toutes les %d minutes.", settings.LIFECYCLE_SWEEP_MINUTES,
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
