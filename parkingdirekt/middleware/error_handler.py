"""Error handling that turns exceptions into the standard JSON envelope."""
import logging
from typing import Any, Awaitable, Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from parkingdirekt.exceptions import MethodNotAllowedError, ParkingDirektError, RateLimitError

logger = logging.getLogger(__name__)


def error_envelope(
    message: str,
    code: str,
    request_id: Optional[str],
    details: Optional[list[dict[str, str]]] = None,
) -> dict[str, Any]:
    return {
        "success": False,
        "error": message,
        "code": code,
        "details": details or [],
        "request_id": request_id,
    }


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request body/query validation failures become 400 with per-field details."""
    request_id = _request_id(request)
    details = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", []))
        details.append({"field": field, "issue": error.get("msg", "Invalid value")})

    logger.warning(
        "Request validation failed",
        extra={"request_id": request_id, "path": request.url.path, "field_count": len(details)},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope("Request validation failed", "VALIDATION_ERROR", request_id, details),
    )


def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Convert HTTPException to the envelope, keeping its status code.

    A dict detail may carry ``code``, ``message`` and ``details``.
    """
    request_id = _request_id(request)
    detail = exc.detail
    details: list[dict[str, str]] = []
    if isinstance(detail, dict):
        code = detail.get("code", "HTTP_ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", [])
    else:
        code = "HTTP_ERROR"
        message = str(detail) if detail else "An error occurred"

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"{code}: {message}",
        extra={"request_id": request_id, "error_code": code, "status_code": exc.status_code},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(message, code, request_id, details),
        headers=getattr(exc, "headers", None),
    )


def handle_app_exception(request: Request, exc: ParkingDirektError) -> JSONResponse:
    """Map ParkingDirekt exceptions to their status codes."""
    request_id = _request_id(request)
    content = error_envelope(exc.message, exc.code, request_id, exc.details)
    headers = None
    if isinstance(exc, RateLimitError):
        content["retry_after"] = exc.retry_after
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, MethodNotAllowedError):
        headers = {"Allow": exc.allowed}

    log_level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    logger.log(
        log_level,
        f"{exc.code}: {exc.message}",
        extra={"request_id": request_id, "error_code": exc.code, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def handle_unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    """Log the full traceback and return a generic 500."""
    request_id = _request_id(request)
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=exc,
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("An unexpected error occurred", "INTERNAL_SERVER_ERROR", request_id),
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Catch exceptions that escape routes and other middleware.

    - ValidationError → 400
    - AuthenticationError → 401
    - PermissionError → 403
    - NotFoundError → 404
    - ConflictError → 409
    - RateLimitError → 429
    - Unhandled → 500 (logs full trace, returns generic message)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except RequestValidationError as exc:
            return handle_validation_error(request, exc)
        except StarletteHTTPException as exc:
            return handle_http_exception(request, exc)
        except ParkingDirektError as exc:
            return handle_app_exception(request, exc)
        except Exception as exc:
            return handle_unhandled_exception(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Install route-level handlers that produce the same envelope as the middleware."""

    @app.exception_handler(ParkingDirektError)
    async def app_exception_handler(request: Request, exc: ParkingDirektError) -> JSONResponse:
        return handle_app_exception(request, exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return handle_validation_error(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return handle_http_exception(request, exc)
