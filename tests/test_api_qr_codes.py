"""
Tests d'intégration API pour les QR codes : statistiques, image PNG, révocation.
"""

import uuid
from unittest.mock import MagicMock, patch

from lecturetrack.errors import AuthorizationError, NotFoundError
from lecturetrack.schemas.qr_code import QrUsageStats

from helpers import LECTURER_ID


# ============================================================
# GET /api/v1/qr-codes/stats
# ============================================================

def test_stats_enseignant_filtre_ses_cours(client, lecturer_headers):
    with patch("lecturetrack.routers.qr_codes.qr_service.get_usage_stats") as mock:
        mock.return_value = QrUsageStats(total_qr_codes=4, active_qr_codes=1, total_scans=10, average_scans=2.5)
        response = client.get("/api/v1/qr-codes/stats", headers=lecturer_headers)

    assert response.status_code == 200
    assert response.json()["average_scans"] == 2.5
    assert mock.call_args.args[1] == LECTURER_ID


def test_stats_admin_tous_les_cours(client, admin_headers):
    with patch("lecturetrack.routers.qr_codes.qr_service.get_usage_stats") as mock:
        mock.return_value = QrUsageStats(total_qr_codes=0, active_qr_codes=0, total_scans=0, average_scans=0.0)
        response = client.get("/api/v1/qr-codes/stats", headers=admin_headers)

    assert response.status_code == 200
    assert mock.call_args.args[1] is None


def test_stats_etudiant_refuse(client, student_headers):
    response = client.get("/api/v1/qr-codes/stats", headers=student_headers)
    assert response.status_code == 403


# ============================================================
# GET /api/v1/qr-codes/{code}/image
# ============================================================

def test_image_png(client, lecturer_headers):
    """L'image est un PNG généré à partir du payload du QR code."""
    with patch("lecturetrack.routers.qr_codes.qr_service.get_qr_code_for_owner") as mock_get, \
         patch("lecturetrack.routers.qr_codes.qr_service.build_payload") as mock_payload:
        mock_get.return_value = (MagicMock(), MagicMock())
        mock_payload.return_value = '{"code":"abc123"}'
        response = client.get("/api/v1/qr-codes/abc123/image", headers=lecturer_headers)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


def test_image_code_inconnu(client, lecturer_headers):
    with patch("lecturetrack.routers.qr_codes.qr_service.get_qr_code_for_owner") as mock:
        mock.side_effect = NotFoundError("QR code introuvable.")
        response = client.get("/api/v1/qr-codes/inconnu/image", headers=lecturer_headers)
    assert response.status_code == 404


# ============================================================
# POST /api/v1/qr-codes/{code}/revoke
# ============================================================

def test_revoke_succes(client, lecturer_headers):
    with patch("lecturetrack.routers.qr_codes.qr_service.revoke_qr_code") as mock:
        response = client.post("/api/v1/qr-codes/abc123/revoke", headers=lecturer_headers)

    assert response.status_code == 204
    assert mock.call_args.kwargs["lecturer_id"] == LECTURER_ID


def test_revoke_code_autre_enseignant(client, lecturer_headers):
    with patch("lecturetrack.routers.qr_codes.qr_service.revoke_qr_code") as mock:
        mock.side_effect = AuthorizationError("Accès refusé.")
        response = client.post("/api/v1/qr-codes/abc123/revoke", headers=lecturer_headers)
    assert response.status_code == 403


def test_revoke_role_invalide(client):
    headers = {"X-User-Id": str(uuid.uuid4()), "X-User-Role": "janitor"}
    response = client.post("/api/v1/qr-codes/abc123/revoke", headers=headers)
    assert response.status_code == 401
