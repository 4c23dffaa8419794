"""Control center settings endpoints (SUPER_ADMIN only)."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from parkingdirekt.api.responses import success
from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.dependencies import get_control_center, require_role
from parkingdirekt.services.control_center import ControlCenterService
from parkingdirekt.utils.clock import utcnow
from parkingdirekt.utils.http import get_client_ip

router = APIRouter(prefix="/api/admin/config", tags=["admin", "config"])

SuperAdmin = Annotated[AuthContext, Depends(require_role(Role.SUPER_ADMIN.value))]
ControlCenter = Annotated[ControlCenterService, Depends(get_control_center)]


class CategoryUpdateRequest(BaseModel):
    settings: dict[str, Any]
    environment: str = "production"


def _metadata(category: str, environment: str) -> dict[str, str]:
    return {
        "category": category,
        "environment": environment,
        "timestamp": utcnow().isoformat() + "Z",
    }


@router.get("/{category}")
async def get_category_settings(
    category: str,
    auth: SuperAdmin,
    control_center: ControlCenter,
    environment: str = "production",
) -> dict[str, Any]:
    data = await control_center.get_category(category, environment)
    body = success(data)
    body["metadata"] = _metadata(category, environment)
    return body


@router.post("/{category}")
async def update_category_settings(
    category: str,
    data: CategoryUpdateRequest,
    request: Request,
    auth: SuperAdmin,
    control_center: ControlCenter,
) -> dict[str, Any]:
    """Validate and store a settings batch; changed values are audited."""
    updated = await control_center.update_category(
        category,
        data.settings,
        auth,
        environment=data.environment,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return success(updated, "Settings updated successfully")
