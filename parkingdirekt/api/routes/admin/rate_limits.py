"""Rate limiter administration."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from parkingdirekt.api.responses import success
from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.dependencies import get_rate_limiter, require_role
from parkingdirekt.services.rate_limiter import RateLimiter

router = APIRouter(prefix="/api/admin/rate-limits", tags=["admin", "rate-limits"])

SuperAdmin = Annotated[AuthContext, Depends(require_role(Role.SUPER_ADMIN.value))]
Limiter = Annotated[RateLimiter, Depends(get_rate_limiter)]


@router.get("/stats")
async def rate_limit_stats(
    auth: SuperAdmin,
    limiter: Limiter,
    seconds: int = Query(3600, ge=60, le=7 * 24 * 3600),
) -> dict[str, Any]:
    return success(await limiter.get_rate_limit_stats(seconds))


@router.delete("/{identifier}")
async def clear_rate_limit(identifier: str, auth: SuperAdmin, limiter: Limiter) -> dict[str, Any]:
    """Reset the counters for ``user:<id>``, ``ip:<addr>`` or ``global``."""
    await limiter.clear_rate_limit_data(identifier)
    return success(message=f"Rate limit data cleared for {identifier}")
