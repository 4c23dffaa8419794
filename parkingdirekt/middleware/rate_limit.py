"""HTTP middleware that applies the API rate limiter to /api requests."""
import logging
from typing import Awaitable, Callable

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from parkingdirekt.middleware.error_handler import error_envelope
from parkingdirekt.services.rate_limiter import RateLimiter, RateLimitResult, identifier_from_request
from parkingdirekt.utils.clock import epoch_ms

logger = logging.getLogger(__name__)

RATE_LIMITED_PREFIX = "/api"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(epoch_ms(result.reset_time) // 1000),
    }
    if result.retry_after is not None:
        headers["Retry-After"] = str(result.retry_after)
    return headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Count each /api request against the caller's window.

    Runs after AuthMiddleware so per_user mode can see the user id. The
    limiter is read from ``app.state.container`` at request time.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not request.url.path.startswith(RATE_LIMITED_PREFIX):
            return await call_next(request)

        container = getattr(request.app.state, "container", None)
        limiter: RateLimiter | None = getattr(container, "rate_limiter", None)
        if limiter is None:
            return await call_next(request)

        config = await limiter.get_config()
        identifier = identifier_from_request(request, config.mode)
        result = await limiter.check_rate_limit(identifier, method=request.method, config=config)

        if not result.allowed:
            request_id = getattr(request.state, "request_id", None)
            retry_after = result.retry_after or 1
            content = error_envelope(
                f"Rate limit exceeded. Retry after {retry_after} seconds",
                "RATE_LIMIT_ERROR",
                request_id,
            )
            content["retry_after"] = retry_after
            logger.warning(
                "Request rate limited",
                extra={"request_id": request_id, "path": request.url.path, "mode": config.mode},
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=content,
                headers=rate_limit_headers(result),
            )

        response = await call_next(request)
        response.headers.update(rate_limit_headers(result))
        return response
