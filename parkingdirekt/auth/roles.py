"""Role definitions and permissions for ParkingDirekt RBAC."""
from enum import Enum
from typing import Set


class Role(str, Enum):
    """User roles on the platform."""

    OWNER = "OWNER"
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = (Role.ADMIN.value, Role.SUPER_ADMIN.value)


class Permission(str, Enum):
    """Permissions that can be granted to roles."""

    # Parking spaces
    CREATE_SPACE = "parking-spaces.create"
    UPDATE_SPACE = "parking-spaces.update"
    DELETE_SPACE = "parking-spaces.delete"
    VIEW_SPACE = "parking-spaces.view"
    MODERATE_SPACE = "parking-spaces.moderate"

    # Bookings
    CREATE_BOOKING = "bookings.create"
    VIEW_BOOKING = "bookings.view"
    MANAGE_BOOKINGS = "bookings.manage"

    # Reviews and payments
    CREATE_REVIEW = "reviews.create"
    PROCESS_PAYMENT = "payments.process"
    VIEW_EARNINGS = "earnings.view"
    GENERATE_QR_CODE = "qr-codes.generate"

    # Administration
    VIEW_USERS = "users.view"
    MANAGE_USERS = "users.manage"
    PLATFORM_ANALYTICS = "platform.analytics"
    SUPPORT_TICKETS = "support.tickets"


ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.OWNER: {
        Permission.CREATE_SPACE,
        Permission.UPDATE_SPACE,
        Permission.DELETE_SPACE,
        Permission.VIEW_BOOKING,
        Permission.VIEW_EARNINGS,
        Permission.GENERATE_QR_CODE,
    },
    Role.USER: {
        Permission.VIEW_SPACE,
        Permission.CREATE_BOOKING,
        Permission.VIEW_BOOKING,
        Permission.CREATE_REVIEW,
        Permission.PROCESS_PAYMENT,
    },
    Role.ADMIN: {
        Permission.VIEW_USERS,
        Permission.MANAGE_USERS,
        Permission.MODERATE_SPACE,
        Permission.MANAGE_BOOKINGS,
        Permission.PLATFORM_ANALYTICS,
        Permission.SUPPORT_TICKETS,
    },
    # Super admins are granted everything in can_access_resource
    Role.SUPER_ADMIN: set(),
}


def parse_role(value: str | None) -> Role:
    """Parse a role claim, defaulting unknown values to USER."""
    try:
        return Role((value or "").upper())
    except ValueError:
        return Role.USER


def can_access_resource(role: str, resource: str) -> bool:
    """Check if a role may access a resource permission string (e.g. "bookings.create").

    Args:
        role: Role name from the token.
        resource: Permission string.

    Returns:
        True if permitted.
    """
    parsed = parse_role(role)
    if parsed is Role.SUPER_ADMIN:
        return True
    return any(permission.value == resource for permission in ROLE_PERMISSIONS.get(parsed, set()))
