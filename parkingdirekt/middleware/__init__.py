"""HTTP middleware for ParkingDirekt."""
from .error_handler import ErrorHandlerMiddleware, register_exception_handlers
from .rate_limit import RateLimitMiddleware
from .request_id import RequestIDMiddleware

__all__ = [
    "ErrorHandlerMiddleware",
    "RateLimitMiddleware",
    "RequestIDMiddleware",
    "register_exception_handlers",
]
