"""Check-in QR tokens for bookings and parking spaces.

Token formats::

    BOOKING_{booking_id}_{user_id}_{timestamp_ms}_{random}
    SPACE_{space_id}_{owner_id}_{timestamp_ms}_{random}
"""
import secrets
import string
import time
from dataclasses import dataclass
from typing import Literal, Optional

QR_MAX_AGE_MS = 24 * 60 * 60 * 1000
QR_TYPES = ("BOOKING", "SPACE")

_RANDOM_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class ParsedQRCode:
    """Decoded QR token."""

    type: Literal["BOOKING", "SPACE"]
    id: str
    user_id: str
    timestamp: int
    random: str


def _now_ms() -> int:
    return int(time.time() * 1000)


def _random_suffix(length: int = 7) -> str:
    return "".join(secrets.choice(_RANDOM_ALPHABET) for _ in range(length))


def generate_booking_qr_code(booking_id: str, user_id: str, timestamp_ms: Optional[int] = None) -> str:
    timestamp = _now_ms() if timestamp_ms is None else timestamp_ms
    return f"BOOKING_{booking_id}_{user_id}_{timestamp}_{_random_suffix()}"


def generate_space_qr_code(space_id: str, owner_id: str, timestamp_ms: Optional[int] = None) -> str:
    timestamp = _now_ms() if timestamp_ms is None else timestamp_ms
    return f"SPACE_{space_id}_{owner_id}_{timestamp}_{_random_suffix()}"


def parse_qr_code(qr_code: str) -> Optional[ParsedQRCode]:
    """
    Decode a QR token.

    Returns:
        ParsedQRCode, or None if the token doesn't match either format
    """
    parts = qr_code.split("_")
    if len(parts) < 5 or parts[0] not in QR_TYPES:
        return None
    if not parts[1] or not parts[2]:
        return None
    try:
        timestamp = int(parts[3])
    except ValueError:
        return None
    return ParsedQRCode(
        type=parts[0],  # type: ignore[arg-type]
        id=parts[1],
        user_id=parts[2],
        timestamp=timestamp,
        random=parts[4],
    )


def validate_qr_timestamp(timestamp_ms: int, max_age_ms: int = QR_MAX_AGE_MS, now_ms: Optional[int] = None) -> bool:
    """True while the token is at most ``max_age_ms`` old (the boundary is still valid)."""
    current = _now_ms() if now_ms is None else now_ms
    return current - timestamp_ms <= max_age_ms
