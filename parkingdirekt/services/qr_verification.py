"""Scanning of booking and space QR codes, including check-in and check-out."""
import logging
from typing import Any, Optional

from pydantic import BaseModel

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import Booking, BookingStatus, ParkingSpace
from parkingdirekt.db.models.schemas import BookingView, ParkingSpaceView, QRAction
from parkingdirekt.exceptions import NotFoundError, PermissionError, ValidationError
from parkingdirekt.services.bookings import CHECK_IN_STATUSES
from parkingdirekt.services.notifications import notify
from parkingdirekt.services.qr_codes import ParsedQRCode, parse_qr_code, validate_qr_timestamp
from parkingdirekt.utils.clock import utcnow

logger = logging.getLogger(__name__)


class QRVerificationResult(BaseModel):
    """Message plus response data for a scan."""

    message: str
    data: dict[str, Any]


class QRVerificationService:
    """Validates QR tokens and applies check-in/check-out transitions."""

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db

    async def verify(
        self,
        auth: AuthContext,
        qr_code: str,
        action: QRAction = "verify",
        now_ms: Optional[int] = None,
    ) -> QRVerificationResult:
        """
        Verify a scanned token.

        Args:
            auth: Scanning user
            qr_code: Raw token
            action: verify, check-in or check-out (booking tokens only)
            now_ms: Current time override for the age check

        Raises:
            ValidationError: Malformed or expired token, or a disallowed transition
            NotFoundError: Booking or space no longer exists
            PermissionError: Caller isn't allowed to scan this token
        """
        parsed = parse_qr_code(qr_code)
        if parsed is None:
            raise ValidationError("Invalid QR code format", code="INVALID_QR_CODE")
        if not validate_qr_timestamp(parsed.timestamp, now_ms=now_ms):
            raise ValidationError("QR code has expired", code="QR_CODE_EXPIRED")

        if parsed.type == "BOOKING":
            return self._verify_booking(auth, parsed, action)
        return self._verify_space(auth, parsed)

    def _verify_booking(self, auth: AuthContext, parsed: ParsedQRCode, action: QRAction) -> QRVerificationResult:
        with self.db.get_session() as session:
            booking = session.get(Booking, parsed.id)
            if booking is None:
                raise NotFoundError("Booking", parsed.id)

            space = booking.space
            is_owner = space.owner_id == auth.user_id
            is_booker = booking.user_id == auth.user_id
            if not (is_owner or is_booker or auth.is_admin):
                raise PermissionError(
                    "You do not have permission to verify this booking",
                    code="PERMISSION_DENIED",
                )

            now = utcnow()
            if action == "check-in":
                if booking.status not in CHECK_IN_STATUSES:
                    raise ValidationError(
                        f"Booking is {booking.status.value.lower()} and cannot be checked in",
                        code="INVALID_BOOKING_STATUS",
                    )
                if now < booking.start_time:
                    raise ValidationError("Too early to check in", code="EARLY_CHECK_IN")
                if now > booking.end_time:
                    raise ValidationError("Booking period has ended", code="BOOKING_EXPIRED")
                booking.status = BookingStatus.ACTIVE
                booking.checked_in_at = now
                message = "Check-in successful"
                if not is_owner:
                    notify(
                        session,
                        space.owner_id,
                        "Check-in Confirmed",
                        f'{auth.name or "A guest"} has checked in for "{space.title}"',
                        "booking",
                    )
            elif action == "check-out":
                if booking.status != BookingStatus.ACTIVE:
                    raise ValidationError("Booking is not currently active", code="NOT_ACTIVE")
                booking.status = BookingStatus.COMPLETED
                booking.checked_out_at = now
                message = "Check-out successful"
                if not is_owner:
                    notify(
                        session,
                        booking.user_id,
                        "Check-out Complete",
                        f'Your parking session at "{space.title}" has ended. Please leave a review!',
                        "booking",
                    )
            elif now < booking.start_time:
                message = f"Valid booking - Check-in available at {booking.start_time.isoformat()}"
            elif now > booking.end_time:
                message = "Booking has expired"
            else:
                message = "Valid booking - Ready for check-in/check-out"

            session.flush()
            data = {
                "booking": BookingView.model_validate(booking).model_dump(mode="json"),
                "can_check_in": (
                    booking.status in CHECK_IN_STATUSES and booking.start_time <= now <= booking.end_time
                ),
                "can_check_out": booking.status == BookingStatus.ACTIVE,
                "is_active": booking.status == BookingStatus.ACTIVE,
                "is_expired": now > booking.end_time,
            }

        logger.info(
            "Booking QR verified",
            extra={"booking_id": parsed.id, "action": action, "actor_id": auth.user_id},
        )
        return QRVerificationResult(message=message, data=data)

    def _verify_space(self, auth: AuthContext, parsed: ParsedQRCode) -> QRVerificationResult:
        with self.db.get_session() as session:
            space = session.get(ParkingSpace, parsed.id)
            if space is None:
                raise NotFoundError("Parking space", parsed.id)
            if space.owner_id != auth.user_id and not auth.is_admin:
                raise PermissionError(
                    "Only the space owner can verify this QR code",
                    code="PERMISSION_DENIED",
                )
            data = {
                "parking_space": ParkingSpaceView.model_validate(space).model_dump(mode="json"),
                "space_id": space.id,
                "title": space.title,
                "address": space.address,
            }
        return QRVerificationResult(message="Parking space verified successfully", data=data)
