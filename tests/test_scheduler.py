"""
Tests du planificateur : clôture automatique des cours terminés.
"""

from unittest.mock import MagicMock, patch

from sqlalchemy import update

from lecturetrack import scheduler
from lecturetrack.models.lecture import Lecture
from lecturetrack.services import qr_service

from helpers import LECTURER_ID, T, at, make_lecture_create


def issue(db):
    return qr_service.issue_qr_code(db, make_lecture_create(), LECTURER_ID, now=T)


def status_of(db, lecture_id):
    db.expire_all()
    return db.get(Lecture, lecture_id).status


def test_cours_termine_passe_en_completed(db_session):
    """Cours 09:00–10:00 : fenêtre de scan close à 10:15."""
    issued = issue(db_session)
    assert scheduler.complete_finished_lectures(db_session, now=at(76)) == 1
    assert status_of(db_session, issued.lecture_id) == "completed"


def test_fenetre_encore_ouverte(db_session):
    issued = issue(db_session)
    assert scheduler.complete_finished_lectures(db_session, now=at(75)) == 0
    assert status_of(db_session, issued.lecture_id) == "ongoing"


def test_cours_annule_inchange(db_session):
    issued = issue(db_session)
    db_session.execute(
        update(Lecture).where(Lecture.id == issued.lecture_id).values(status="cancelled", is_active=False)
    )
    db_session.commit()

    assert scheduler.complete_finished_lectures(db_session, now=at(500)) == 0
    assert status_of(db_session, issued.lecture_id) == "cancelled"


def test_tache_planifiee_ferme_la_session():
    """La tâche planifiée ouvre et ferme sa propre session, même en cas d'erreur."""
    db = MagicMock()
    db.execute.side_effect = RuntimeError("connexion perdue")
    with patch("lecturetrack.scheduler.SessionLocal", return_value=db):
        scheduler._complete_finished_lectures_scheduled()
    db.close.assert_called_once()


def test_start_scheduler_enregistre_le_job():
    with patch("lecturetrack.scheduler.scheduler") as mock:
        scheduler.start_scheduler()
    job_kwargs = mock.add_job.call_args.kwargs
    assert job_kwargs["id"] == "lecture_lifecycle_sweep"
    assert job_kwargs["minutes"] == 5
    mock.start.assert_called_once()
