"""Feature flag administration through ``/api/admin/features?action=...``."""
import logging
from typing import Annotated, Any, Optional, TypeVar

import pydantic
from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from parkingdirekt.api.responses import success
from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.dependencies import get_feature_flags, require_role
from parkingdirekt.exceptions import MethodNotAllowedError, ValidationError
from parkingdirekt.features.models import (
    EmergencyRollbackRequest,
    FeatureFlagCreate,
    FlagConditionsRequest,
    FlagRolloutRequest,
    FlagToggleRequest,
)
from parkingdirekt.features.service import FeatureFlagService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/features", tags=["admin", "feature-flags"])

SuperAdmin = Annotated[AuthContext, Depends(require_role(Role.SUPER_ADMIN.value))]
Flags = Annotated[FeatureFlagService, Depends(get_feature_flags)]

ACTION_METHODS = {
    "toggle": "POST",
    "rollout": "POST",
    "conditions": "POST",
    "create": "POST",
    "emergency-rollback": "POST",
    "list": "GET",
    "stats": "GET",
}

M = TypeVar("M", bound=BaseModel)


def _check_action(action: Optional[str], method: str) -> str:
    if not action:
        raise ValidationError("Action is required", code="INVALID_ACTION")
    if action not in ACTION_METHODS:
        raise ValidationError("Invalid action", code="INVALID_ACTION")
    if ACTION_METHODS[action] != method:
        raise MethodNotAllowedError(ACTION_METHODS[action])
    return action


async def _parse(request: Request, model: type[M]) -> M:
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    try:
        return model.model_validate(payload or {})
    except pydantic.ValidationError as e:
        details = [
            {"field": ".".join(str(loc) for loc in error["loc"]), "issue": error["msg"]}
            for error in e.errors()
        ]
        raise ValidationError("Request validation failed", details=details) from e


@router.get("")
async def feature_flag_query(
    auth: SuperAdmin,
    flags: Flags,
    action: Optional[str] = None,
    environment: str = "production",
    days: int = Query(7, ge=1, le=365),
) -> dict[str, Any]:
    """``list`` and ``stats`` actions."""
    action = _check_action(action, "GET")
    if action == "list":
        all_flags = await flags.get_all_flags(environment)
        return success({"flags": all_flags, "environment": environment, "total": len(all_flags)})
    return success(await flags.get_usage_stats(days))


@router.post("")
async def feature_flag_command(
    request: Request,
    auth: SuperAdmin,
    flags: Flags,
    action: Optional[str] = None,
) -> dict[str, Any]:
    """Write actions: toggle, rollout, conditions, create, emergency-rollback."""
    action = _check_action(action, "POST")

    if action == "toggle":
        data = await _parse(request, FlagToggleRequest)
        flag = await flags.toggle_flag(data.flag_key, data.enabled, auth.user_id, data.environment)
        state = "enabled" if data.enabled else "disabled"
        return success(flag, f"Feature flag {data.flag_key} {state}")

    if action == "rollout":
        data = await _parse(request, FlagRolloutRequest)
        flag = await flags.update_rollout_percentage(
            data.flag_key, data.percentage, auth.user_id, data.environment
        )
        return success(flag, f"Feature flag {data.flag_key} rollout updated to {data.percentage}%")

    if action == "conditions":
        data = await _parse(request, FlagConditionsRequest)
        flag = await flags.update_conditions(data.flag_key, data.conditions, auth.user_id, data.environment)
        return success(flag, f"Feature flag {data.flag_key} conditions updated")

    if action == "create":
        data = await _parse(request, FeatureFlagCreate)
        flag = await flags.create_flag(data, auth.user_id)
        return success(flag, f"Feature flag {data.flag_key} created successfully")

    data = await _parse(request, EmergencyRollbackRequest)
    count = await flags.emergency_rollback(auth.user_id, data.environment)
    logger.warning(
        "Emergency rollback executed",
        extra={"admin_id": auth.user_id, "environment": data.environment, "flags_disabled": count},
    )
    return success(
        {"flags_disabled": count, "environment": data.environment},
        "Emergency rollback completed - all feature flags disabled",
    )
