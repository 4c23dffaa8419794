"""Custom exceptions for consistent error handling."""


class ParkingDirektError(Exception):
    """Base exception for all ParkingDirekt errors."""

    status_code = 500

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict[str, str]] | None = None,
    ):
        """
        Initialize ParkingDirekt exception.

        Args:
            code: Error code (e.g., "VALIDATION_ERROR")
            message: Human-readable error message
            details: Optional list of field-specific error details
        """
        self.code = code
        self.message = message
        self.details = details or []
        super().__init__(self.message)


class ValidationError(ParkingDirektError):
    """Raised when request validation fails (400)."""

    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        details: list[dict[str, str]] | None = None,
        code: str = "VALIDATION_ERROR",
    ):
        super().__init__(
            code=code,
            message=message,
            details=details,
        )


class AuthenticationError(ParkingDirektError):
    """Raised when authentication fails (401)."""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(
            code="AUTHENTICATION_ERROR",
            message=message,
        )


class PermissionError(ParkingDirektError):
    """Raised when user lacks required permissions (403)."""

    status_code = 403

    def __init__(self, message: str = "Insufficient permissions", code: str = "PERMISSION_ERROR"):
        super().__init__(
            code=code,
            message=message,
        )


class NotFoundError(ParkingDirektError):
    """Raised when a resource is not found (404)."""

    status_code = 404

    def __init__(self, resource_type: str = "Resource", resource_id: str | None = None):
        message = f"{resource_type} not found"
        if resource_id:
            message = f"{resource_type} '{resource_id}' not found"

        super().__init__(
            code="NOT_FOUND",
            message=message,
        )
        self.resource_type = resource_type


class ConflictError(ParkingDirektError):
    """Raised when a write collides with existing state (409)."""

    status_code = 409

    def __init__(self, message: str = "Resource conflict", code: str = "CONFLICT"):
        super().__init__(
            code=code,
            message=message,
        )


class RateLimitError(ParkingDirektError):
    """Raised when rate limit is exceeded (429)."""

    status_code = 429

    def __init__(self, retry_after: int, message: str | None = None):
        if message is None:
            message = f"Rate limit exceeded. Retry after {retry_after} seconds"

        super().__init__(
            code="RATE_LIMIT_ERROR",
            message=message,
        )
        self.retry_after = retry_after


class MethodNotAllowedError(ParkingDirektError):
    """Raised when an action is called with the wrong HTTP method (405)."""

    status_code = 405

    def __init__(self, allowed: str, message: str = "Method Not Allowed"):
        super().__init__(
            code="METHOD_NOT_ALLOWED",
            message=message,
        )
        self.allowed = allowed
