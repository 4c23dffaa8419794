"""Health check endpoints."""
import logging
import time
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from parkingdirekt.dependencies import Container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_liveness() -> dict[str, str]:
    """
    Liveness check endpoint.

    Returns 200 OK if the service is running.
    """
    return {"status": "healthy"}


async def _timed(check) -> dict[str, Any]:
    started = time.monotonic()
    try:
        ok = await check()
    except Exception as e:
        logger.warning("Health check raised", extra={"error": str(e), "error_type": type(e).__name__})
        ok = False
    latency_ms = round((time.monotonic() - started) * 1000)
    return {"status": "up" if ok else "down", "latency_ms": latency_ms}


@router.get("/health/ready", response_model=None)
async def health_readiness(container: Container) -> JSONResponse | dict[str, Any]:
    """
    Readiness check endpoint.

    Checks the database, the config store and, when configured, Redis.
    Returns 503 if any of them is down.
    """
    async def database() -> bool:
        return container.db.health_check()

    async def redis() -> bool:
        return bool(await container.redis.ping())

    checks = {
        "database": await _timed(database),
        "config_store": await _timed(container.config_store.is_healthy),
    }
    if container.redis is not None:
        checks["redis"] = await _timed(redis)

    overall = "healthy" if all(check["status"] == "up" for check in checks.values()) else "unhealthy"
    body = {"status": overall, "checks": checks, "version": "1.0.0"}
    if overall == "unhealthy":
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
    return body
