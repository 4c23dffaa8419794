"""FastAPI middleware for bearer token authentication."""
from collections.abc import Awaitable, Callable

from fastapi import Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from parkingdirekt.auth.models import AuthError
from parkingdirekt.auth.tokens import decode_access_token

security = HTTPBearer(auto_error=False)


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Middleware to validate bearer tokens and attach the auth context.

    A request without an Authorization header proceeds anonymously with
    ``request.state.auth = None``; routes that need a user enforce it through
    the ``get_current_user`` dependency. A header carrying a bad or expired
    token is rejected with 401 here.
    """

    def __init__(self, app: ASGIApp, session_secret: str) -> None:
        super().__init__(app)
        self.session_secret = session_secret

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Process request and validate bearer token."""
        request.state.auth = None

        if self._should_skip_auth(request):
            return await call_next(request)

        auth_error = await self._validate_token(request)
        if auth_error:
            request_id = getattr(request.state, "request_id", None)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content=auth_error.to_envelope(request_id),
            )

        return await call_next(request)

    def _should_skip_auth(self, request: Request) -> bool:
        """Check if authentication should be skipped for this path."""
        skip_paths = [
            "/health",
            "/docs",
            "/openapi.json",
            "/redoc",
        ]
        return any(request.url.path.startswith(path) for path in skip_paths)

    async def _validate_token(self, request: Request) -> AuthError | None:
        """
        Validate bearer token (if present) and attach AuthContext to request.state.

        Returns:
            AuthError if a token was sent and failed validation, None otherwise
        """
        if "authorization" not in request.headers:
            return None

        credentials: HTTPAuthorizationCredentials | None = await security(request)
        if not credentials:
            return AuthError.invalid_token("Authorization header must use the Bearer scheme")

        result = decode_access_token(credentials.credentials, self.session_secret)
        if isinstance(result, AuthError):
            return result

        request.state.auth = result
        return None
