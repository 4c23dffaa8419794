"""Bearer token issuing and validation (HS256)."""
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from parkingdirekt.auth.models import AuthContext, AuthError
from parkingdirekt.auth.roles import parse_role

JWT_ALGORITHM = "HS256"


def issue_access_token(
    secret: str,
    user_id: str,
    email: str,
    role: str = "USER",
    name: str | None = None,
    ttl_minutes: int = 60,
) -> str:
    """
    Sign an access token for a user.

    Args:
        secret: Signing secret (SESSION_SECRET)
        user_id: Subject
        email: User email
        role: Platform role
        name: Optional display name
        ttl_minutes: Lifetime of the token

    Returns:
        Encoded JWT
    """
    now = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "role": parse_role(role).value,
        "iat": now,
        "exp": now + timedelta(minutes=ttl_minutes),
    }
    if name:
        claims["name"] = name
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str, secret: str) -> AuthContext | AuthError:
    """
    Validate a token and build the auth context.

    Returns:
        AuthContext on success, AuthError describing the failure otherwise
    """
    try:
        decoded = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"verify_exp": True, "require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError:
        return AuthError.expired_token()
    except jwt.MissingRequiredClaimError as e:
        return AuthError.missing_claims(e.claim)
    except jwt.InvalidTokenError as e:
        return AuthError.invalid_token(str(e))

    return extract_auth_context(decoded)


def extract_auth_context(decoded: dict[str, Any]) -> AuthContext | AuthError:
    """
    Extract AuthContext from decoded JWT claims.

    Returns:
        AuthContext if valid, AuthError if claims are missing
    """
    user_id = decoded.get("sub")
    if not user_id:
        return AuthError.missing_claims("sub")

    email = decoded.get("email", "")
    if not email:
        return AuthError.missing_claims("email")

    exp = decoded.get("exp")
    if not exp:
        return AuthError.missing_claims("exp")

    try:
        token_exp = datetime.fromtimestamp(exp, tz=UTC)
    except (ValueError, TypeError, OSError):
        return AuthError.invalid_token("Invalid expiration format")

    return AuthContext(
        user_id=str(user_id),
        email=email,
        role=parse_role(decoded.get("role")).value,
        name=decoded.get("name"),
        token_exp=token_exp,
    )
