"""
Router pour l'administration des QR codes : statistiques, image, révocation.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from lecturetrack.auth import CurrentUser, require_role
from lecturetrack.database import get_db
from lecturetrack.schemas.qr_code import QrUsageStats
from lecturetrack.services import qr_service

router = APIRouter(prefix="/api/v1/qr-codes", tags=["QR codes"])


@router.get("/stats", response_model=QrUsageStats, summary="Statistiques d'utilisation des QR codes")
def get_usage_stats(
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_role("lecturer", "admin")),
):
    """
    Enseignant : statistiques de ses propres QR codes.
    Administrateur : statistiques de tous les QR codes.
    """
    lecturer_id = user.id if user.role == "lecturer" else None
    return qr_service.get_usage_stats(db, lecturer_id)


@router.get("/{code}/image", summary="Image PNG d'un QR code",
            response_class=Response, responses={200: {"content": {"image/png": {}}}})
def get_qr_image(
    code: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_role("lecturer")),
):
    """Génère l'image PNG du QR code (payload JSON : cours, code, expiration, unité)."""
    lecture, qr_code = qr_service.get_qr_code_for_owner(db, code, user.id)
    png = qr_service.render_qr_image(qr_service.build_payload(lecture, qr_code))
    return Response(content=png, media_type="image/png")


@router.post("/{code}/revoke", status_code=204, summary="Révoquer un QR code")
def revoke_qr_code(
    code: str,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_role("lecturer")),
):
    """
    Désactive le QR code et le fait expirer immédiatement (fin de cours anticipée).
    Idempotent : révoquer un code déjà inactif ne produit pas d'erreur.
    """
    qr_service.revoke_qr_code(db, code, lecturer_id=user.id)
