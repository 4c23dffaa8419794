"""Email delivery administration."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from parkingdirekt.api.responses import success
from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.dependencies import get_email_manager, require_role
from parkingdirekt.exceptions import NotFoundError
from parkingdirekt.services.email import EmailDeliveryManager

router = APIRouter(prefix="/api/admin/email", tags=["admin", "email"])

SuperAdmin = Annotated[AuthContext, Depends(require_role(Role.SUPER_ADMIN.value))]
Email = Annotated[EmailDeliveryManager, Depends(get_email_manager)]


@router.get("/stats")
async def email_delivery_stats(
    auth: SuperAdmin,
    email: Email,
    days: int = Query(7, ge=1, le=90),
) -> dict[str, Any]:
    stats = await email.get_delivery_stats(days)
    return success({**stats.model_dump(), "providers": sorted(email.providers)})


@router.post("/test/{provider}")
async def test_email_provider(provider: str, auth: SuperAdmin, email: Email) -> dict[str, Any]:
    """Check that a registered provider can connect with its credentials."""
    if provider not in email.providers:
        raise NotFoundError("Email provider", provider)
    connected = await email.test_connection(provider)
    message = "Connection successful" if connected else "Connection failed"
    return success({"provider": provider, "connected": connected}, message)
