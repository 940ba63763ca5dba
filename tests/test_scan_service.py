"""
Tests du service de scan : pré-contrôle ordonné, enregistrement atomique
et classification des présences. Base SQLite temporaire (fixture db_session).
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from lecturetrack.errors import ConflictError, ExpiredOrExhaustedError, ValidationError
from lecturetrack.models.attendance import Attendance
from lecturetrack.models.lecture import Lecture
from lecturetrack.models.qr_code import QRCode
from lecturetrack.schemas.scan import DeviceInfo, RejectReason, ScanAccepted, ScanRejected, ScanRequest
from lecturetrack.services import qr_service, scan_service
from lecturetrack.services.time_policy import as_utc

from helpers import LECTURER_ID, T, at, make_lecture_create

STUDENT_A = uuid.UUID("aaaaaaaa-0000-4000-8000-000000000001")
STUDENT_B = uuid.UUID("bbbbbbbb-0000-4000-8000-000000000002")
STUDENT_C = uuid.UUID("cccccccc-0000-4000-8000-000000000003")


def issue(db, **kwargs):
    return qr_service.issue_qr_code(db, make_lecture_create(**kwargs), LECTURER_ID, "Dr. Martin", now=T)


def scan(db, code, student_id, minutes, **kwargs):
    return scan_service.scan_qr_code(db, ScanRequest(code=code, **kwargs), student_id, now=at(minutes))


def reload(db, model, obj_id):
    db.expire_all()
    return db.get(model, obj_id)


# ============================================================
# Scénario complet : capacité 2, cours 09:00–10:00, QR valable 60 min
# ============================================================

def test_scenario_capacite_deux(db_session):
    issued = issue(db_session, total_students=2, duration=60)
    code = issued.unique_code

    # A à T+5 → présent
    result = scan(db_session, code, STUDENT_A, 5)
    assert result.accepted is True
    assert result.attendance.status == "present"
    assert reload(db_session, QRCode, issued.qr_code_id).scan_count == 1

    # A à nouveau → doublon, aucun scan consommé
    result = scan(db_session, code, STUDENT_A, 6)
    assert result.accepted is False
    assert result.reason == RejectReason.ALREADY_RECORDED
    assert reload(db_session, QRCode, issued.qr_code_id).scan_count == 1

    # B à T+20 → en retard, budget atteint, code désactivé
    result = scan(db_session, code, STUDENT_B, 20)
    assert result.accepted is True
    assert result.attendance.status == "late"
    qr_code = reload(db_session, QRCode, issued.qr_code_id)
    assert qr_code.scan_count == 2
    assert qr_code.is_active is False

    # C à T+25 → code épuisé
    result = scan(db_session, code, STUDENT_C, 25)
    assert result.accepted is False
    assert result.reason == RejectReason.INVALID_EXPIRED_OR_EXHAUSTED

    lecture = reload(db_session, Lecture, issued.lecture_id)
    assert lecture.attendance_count == 2


# ============================================================
# validate_scan : ordre des contrôles
# ============================================================

class TestValidateScan:

    def test_accepte(self, db_session):
        issued = issue(db_session)
        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        assert isinstance(validation, ScanAccepted)
        assert isinstance(validation.lecture, Lecture)
        assert isinstance(validation.qr_code, QRCode)
        assert validation.lecture.id == issued.lecture_id
        assert validation.qr_code.id == issued.qr_code_id

    def test_code_inconnu(self, db_session):
        validation = scan_service.validate_scan(db_session, "inconnu", STUDENT_A, now=at(1))
        assert validation == ScanRejected(RejectReason.INVALID_EXPIRED_OR_EXHAUSTED)

    def test_expiration_avant_doublon(self, db_session):
        """Un code expiré est signalé comme tel, même pour un étudiant déjà enregistré."""
        issued = issue(db_session, duration=30)
        scan(db_session, issued.unique_code, STUDENT_A, 5)

        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(31))
        assert validation.reason == RejectReason.INVALID_EXPIRED_OR_EXHAUSTED

    def test_expire_a_l_instant_exact(self, db_session):
        """expires_at > now : le code n'est plus valable à l'instant d'expiration."""
        issued = issue(db_session, duration=30)
        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(30))
        assert validation.reason == RejectReason.INVALID_EXPIRED_OR_EXHAUSTED

    def test_cours_desactive(self, db_session):
        issued = issue(db_session)
        db_session.execute(update(Lecture).where(Lecture.id == issued.lecture_id).values(is_active=False))
        db_session.commit()

        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        assert validation.reason == RejectReason.SESSION_UNAVAILABLE

    def test_doublon_avant_fenetre(self, db_session):
        """Un étudiant déjà enregistré reçoit already_recorded, même hors fenêtre."""
        issued = issue(db_session, duration=240)
        scan(db_session, issued.unique_code, STUDENT_A, 5)

        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(100))
        assert validation.reason == RejectReason.ALREADY_RECORDED

    def test_hors_fenetre(self, db_session):
        issued = issue(db_session, duration=240)
        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_B, now=at(100))
        assert validation.reason == RejectReason.OUTSIDE_SCAN_WINDOW

    def test_trop_tot(self, db_session):
        issued = issue(db_session, duration=60)
        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_B, now=at(-31))
        assert validation.reason == RejectReason.OUTSIDE_SCAN_WINDOW

    def test_aucune_ecriture(self, db_session):
        issued = issue(db_session)
        scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        assert reload(db_session, QRCode, issued.qr_code_id).scan_count == 0
        assert db_session.execute(select(Attendance)).first() is None


# ============================================================
# record_attendance
# ============================================================

class TestRecordAttendance:

    def test_absent_apres_la_fin(self, db_session):
        """Scan entre la fin et fin + 15 min → enregistré comme absent."""
        issued = issue(db_session, duration=240)
        result = scan(db_session, issued.unique_code, STUDENT_A, 65)
        assert result.accepted is True
        assert result.attendance.status == "absent"

    def test_informations_appareil_enregistrees(self, db_session):
        issued = issue(db_session)
        validation = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        summary = scan_service.record_attendance(
            db_session, validation, STUDENT_A,
            device_info=DeviceInfo(browser="Firefox", device="Mobile"),
            now=at(1),
        )

        attendance = reload(db_session, Attendance, summary.attendance_id)
        assert attendance.device_info == {"browser": "Firefox", "device": "Mobile"}
        assert attendance.is_verified is True
        assert attendance.qr_code_id == issued.qr_code_id

    def test_budget_consomme_entre_temps(self, db_session):
        """Le pré-contrôle a accepté mais le dernier scan a été pris par un autre."""
        issued = issue(db_session, total_students=1)
        validation_a = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        validation_b = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_B, now=at(1))

        scan_service.record_attendance(db_session, validation_a, STUDENT_A, now=at(1))
        with pytest.raises(ExpiredOrExhaustedError):
            scan_service.record_attendance(db_session, validation_b, STUDENT_B, now=at(1))

        qr_code = reload(db_session, QRCode, issued.qr_code_id)
        assert qr_code.scan_count == 1
        assert reload(db_session, Lecture, issued.lecture_id).attendance_count == 1

    def test_doublon_concurrent_annule_l_increment(self, db_session):
        """La contrainte d'unicité départage deux enregistrements du même étudiant."""
        issued = issue(db_session, total_students=5)
        first = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))
        second = scan_service.validate_scan(db_session, issued.unique_code, STUDENT_A, now=at(1))

        scan_service.record_attendance(db_session, first, STUDENT_A, now=at(1))
        with pytest.raises(ConflictError) as exc:
            scan_service.record_attendance(db_session, second, STUDENT_A, now=at(1))

        assert exc.value.reason == "already_recorded"
        assert reload(db_session, QRCode, issued.qr_code_id).scan_count == 1


# ============================================================
# scan_qr_code : heure fournie par le client
# ============================================================

class TestClientScanTime:

    def test_heure_client_utilisee_pour_la_classification(self, db_session):
        """Heure client légèrement antérieure (dans la tolérance) → présent au lieu de late."""
        issued = issue(db_session)
        result = scan(db_session, issued.unique_code, STUDENT_A, 16, scanned_at=at(14))
        assert result.accepted is True
        assert result.attendance.status == "present"
        assert result.attendance.scanned_at == at(14)

    def test_heure_client_trop_eloignee(self, db_session):
        issued = issue(db_session)
        with pytest.raises(ValidationError, match="trop éloignée"):
            scan(db_session, issued.unique_code, STUDENT_A, 20, scanned_at=at(5))
        assert reload(db_session, QRCode, issued.qr_code_id).scan_count == 0

    def test_heure_client_naive_consideree_utc(self, db_session):
        issued = issue(db_session)
        naive = (at(10) - timedelta(seconds=30)).replace(tzinfo=None)
        result = scan(db_session, issued.unique_code, STUDENT_A, 10, scanned_at=naive)
        assert result.accepted is True
        assert as_utc(result.attendance.scanned_at) == at(10) - timedelta(seconds=30)
