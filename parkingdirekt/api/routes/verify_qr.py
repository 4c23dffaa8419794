"""QR code scanning endpoint."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends

from parkingdirekt.api.responses import success
from parkingdirekt.db.models.schemas import VerifyQRRequest
from parkingdirekt.dependencies import CurrentUser, get_qr_verification_service
from parkingdirekt.services.qr_verification import QRVerificationService

router = APIRouter(prefix="/api/verify-qr", tags=["qr-codes"])


@router.post("")
async def verify_qr_code(
    data: VerifyQRRequest,
    auth: CurrentUser,
    service: Annotated[QRVerificationService, Depends(get_qr_verification_service)],
) -> dict[str, Any]:
    """Verify a booking or space token, optionally checking in or out."""
    result = await service.verify(auth, data.qr_code.strip(), data.action)
    return success(result.data, result.message)
