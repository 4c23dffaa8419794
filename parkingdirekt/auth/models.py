"""Pydantic models for authentication."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from parkingdirekt.auth.roles import ADMIN_ROLES


class AuthContext(BaseModel):
    """Authentication context attached to request state."""

    user_id: str = Field(..., description="User id from JWT sub claim")
    email: str = Field(..., description="User email address")
    role: str = Field(default="USER", description="Platform role")
    name: str | None = Field(None, description="Display name")
    token_exp: datetime = Field(..., description="Token expiration timestamp")

    def has_role(self, role: str) -> bool:
        """Check if user has a specific role."""
        return self.role == role

    def has_any_role(self, roles: list[str] | tuple[str, ...]) -> bool:
        """Check if user has any of the specified roles."""
        return self.role in roles

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def flag_context(self) -> dict[str, Any]:
        """Evaluation context for feature flags."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "role": self.role,
        }


class AuthError(BaseModel):
    """Authentication error response model."""

    code: str = Field(..., description="Error code (MISSING_TOKEN, INVALID_TOKEN, etc.)")
    message: str = Field(..., description="Human-readable error message")

    @classmethod
    def missing_token(cls) -> "AuthError":
        """Create error for missing Authorization header."""
        return cls(
            code="MISSING_TOKEN",
            message="Authorization header is required",
        )

    @classmethod
    def invalid_token(cls, reason: str = "Invalid token signature or format") -> "AuthError":
        """Create error for invalid token."""
        return cls(
            code="INVALID_TOKEN",
            message=reason,
        )

    @classmethod
    def expired_token(cls) -> "AuthError":
        """Create error for expired token."""
        return cls(
            code="EXPIRED_TOKEN",
            message="Token has expired",
        )

    @classmethod
    def missing_claims(cls, missing: str) -> "AuthError":
        """Create error for missing required claims."""
        return cls(
            code="MISSING_CLAIMS",
            message=f"Missing required claim: {missing}",
        )

    def to_envelope(self, request_id: str | None = None) -> dict[str, Any]:
        return {
            "success": False,
            "error": self.message,
            "code": self.code,
            "details": [],
            "request_id": request_id,
        }
