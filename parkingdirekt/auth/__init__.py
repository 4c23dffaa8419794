"""Authentication and role handling."""
from parkingdirekt.auth.models import AuthContext, AuthError
from parkingdirekt.auth.roles import ADMIN_ROLES, Role, can_access_resource
from parkingdirekt.auth.tokens import decode_access_token, issue_access_token

__all__ = [
    "AuthContext",
    "AuthError",
    "ADMIN_ROLES",
    "Role",
    "can_access_resource",
    "decode_access_token",
    "issue_access_token",
]
