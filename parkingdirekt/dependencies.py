"""FastAPI dependencies for authentication and service access."""
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.container import ServiceContainer
from parkingdirekt.features.service import FeatureFlagService
from parkingdirekt.services.bookings import BookingService
from parkingdirekt.services.control_center import ControlCenterService
from parkingdirekt.services.email import EmailDeliveryManager
from parkingdirekt.services.notifications import NotificationService
from parkingdirekt.services.parking_spaces import ParkingSpaceService
from parkingdirekt.services.qr_verification import QRVerificationService
from parkingdirekt.services.rate_limiter import RateLimiter
from parkingdirekt.services.reviews import ReviewService


def get_current_user(request: Request) -> AuthContext:
    """
    Dependency to get current authenticated user from request state.

    Raises:
        HTTPException: If user is not authenticated
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)

    if not auth:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "NOT_AUTHENTICATED",
                "message": "Unauthorized",
            },
        )

    return auth


def require_role(role: str):
    """
    Dependency factory to require a specific role.

    Usage:
        @router.get("/admin")
        async def admin_endpoint(user: Annotated[AuthContext, Depends(require_role("SUPER_ADMIN"))]):
            ...
    """
    def role_checker(user: AuthContext = Depends(get_current_user)) -> AuthContext:
        if not user.has_role(role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "INSUFFICIENT_PERMISSIONS",
                    "message": f"Role '{role}' is required",
                },
            )
        return user

    return role_checker


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


Container = Annotated[ServiceContainer, Depends(get_container)]
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]


def get_feature_flags(container: Container) -> FeatureFlagService:
    return container.feature_flags


def get_rate_limiter(container: Container) -> RateLimiter:
    return container.rate_limiter


def get_email_manager(container: Container) -> EmailDeliveryManager:
    return container.email


def get_parking_space_service(container: Container) -> ParkingSpaceService:
    return container.parking_spaces


def get_booking_service(container: Container) -> BookingService:
    return container.bookings


def get_review_service(container: Container) -> ReviewService:
    return container.reviews


def get_notification_service(container: Container) -> NotificationService:
    return container.notifications


def get_qr_verification_service(container: Container) -> QRVerificationService:
    return container.qr_verification


def get_control_center(container: Container) -> ControlCenterService:
    return container.control_center
