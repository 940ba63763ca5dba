"""
Router pour le scan des QR codes par les étudiants.
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from lecturetrack.auth import CurrentUser, require_role
from lecturetrack.database import get_db
from lecturetrack.schemas.scan import AttendanceSummary, DeviceInfo, RejectReason, ScanRequest
from lecturetrack.services import scan_service

router = APIRouter(prefix="/api/v1/scans", tags=["Scans"])


def _device_info(request: Request, data: ScanRequest) -> DeviceInfo:
    """Informations de l'appareil : celles du client, complétées par les en-têtes HTTP."""
    provided = data.device_info or DeviceInfo()
    user_agent = request.headers.get("user-agent")
    return DeviceInfo(
        browser=provided.browser or user_agent or "Unknown",
        os=provided.os or request.headers.get("sec-ch-ua-platform") or "Unknown",
        device=provided.device or ("Mobile" if request.headers.get("sec-ch-ua-mobile") == "?1" else "Desktop"),
        user_agent=provided.user_agent or user_agent,
        ip=request.client.host if request.client else None,
    )


@router.post("", response_model=AttendanceSummary, status_code=201,
             summary="Scanner un QR code et enregistrer sa présence")
def scan_qr_code(
    data: ScanRequest,
    request: Request,
    db: Session = Depends(get_db),
    user: CurrentUser = Depends(require_role("student")),
):
    """
    Valide le QR code puis enregistre la présence de l'étudiant.

    Rejets (detail.reason) :
    - invalid_expired_or_exhausted → 400
    - session_unavailable → 400
    - already_recorded → 409
    - outside_scan_window → 400
    """
    result = scan_service.scan_qr_code(db, data, user.id, device_info=_device_info(request, data))
    if not result.accepted:
        status_code = 409 if result.reason == RejectReason.ALREADY_RECORDED else 400
        raise HTTPException(
            status_code=status_code,
            detail={"reason": result.reason.value, "message": result.message},
        )
    return result.attendance
