"""ORM models for ParkingDirekt."""
from .base import Base
from .control_center import (
    AdminAuditLog,
    ApiRateLimitLog,
    EmailDeliveryLog,
    EmailRetryItem,
    FeatureFlag,
    IntegrationSetting,
    SystemConfig,
)
from .marketplace import (
    OPEN_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    Notification,
    ParkingSpace,
    PlatformRevenue,
    Review,
    SpaceType,
    User,
)

__all__ = [
    "Base",
    "AdminAuditLog",
    "ApiRateLimitLog",
    "EmailDeliveryLog",
    "EmailRetryItem",
    "FeatureFlag",
    "IntegrationSetting",
    "SystemConfig",
    "OPEN_BOOKING_STATUSES",
    "Booking",
    "BookingStatus",
    "Notification",
    "ParkingSpace",
    "PlatformRevenue",
    "Review",
    "SpaceType",
    "User",
]
