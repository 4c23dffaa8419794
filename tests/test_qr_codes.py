"""Tests for QR token generation, parsing and scanning."""
from datetime import timedelta

import pytest

from parkingdirekt.db.models import Booking, BookingStatus, Notification
from parkingdirekt.exceptions import NotFoundError, PermissionError, ValidationError
from parkingdirekt.services.qr_codes import (
    QR_MAX_AGE_MS,
    generate_booking_qr_code,
    generate_space_qr_code,
    parse_qr_code,
    validate_qr_timestamp,
)
from parkingdirekt.services.qr_verification import QRVerificationService
from parkingdirekt.utils.clock import utcnow
from tests.conftest import make_auth


class TestQRTokens:
    def test_booking_token_parses(self):
        token = generate_booking_qr_code("bk1", "user1", timestamp_ms=1_700_000_000_000)
        parsed = parse_qr_code(token)
        assert parsed is not None
        assert parsed.type == "BOOKING"
        assert parsed.id == "bk1"
        assert parsed.user_id == "user1"
        assert parsed.timestamp == 1_700_000_000_000
        assert len(parsed.random) == 7

    def test_space_token_parses(self):
        parsed = parse_qr_code(generate_space_qr_code("sp1", "owner1"))
        assert parsed.type == "SPACE"
        assert parsed.user_id == "owner1"

    @pytest.mark.parametrize(
        "token",
        ["", "BOOKING_a_b_c", "TICKET_a_b_1_x", "BOOKING_a_b_notanumber_x", "BOOKING__b_1_x"],
    )
    def test_malformed_tokens(self, token):
        assert parse_qr_code(token) is None

    def test_age_boundary_is_inclusive(self):
        issued = 1_700_000_000_000
        assert validate_qr_timestamp(issued, now_ms=issued + QR_MAX_AGE_MS) is True
        assert validate_qr_timestamp(issued, now_ms=issued + QR_MAX_AGE_MS + 1) is False


@pytest.fixture
def qr(db) -> QRVerificationService:
    return QRVerificationService(db)


def _token(booking) -> str:
    return generate_booking_qr_code(booking.id, booking.user_id)


class TestQRVerification:
    @pytest.mark.asyncio
    async def test_invalid_format(self, qr):
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), "garbage")
        assert exc.value.code == "INVALID_QR_CODE"

    @pytest.mark.asyncio
    async def test_expired_token(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"])
        token = generate_booking_qr_code(booking.id, "renter-1", timestamp_ms=1_000)
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), token)
        assert exc.value.code == "QR_CODE_EXPIRED"

    @pytest.mark.asyncio
    async def test_unknown_booking(self, qr):
        with pytest.raises(NotFoundError):
            await qr.verify(make_auth("renter-1"), generate_booking_qr_code("missing", "renter-1"))

    @pytest.mark.asyncio
    async def test_stranger_is_rejected(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"])
        with pytest.raises(PermissionError) as exc:
            await qr.verify(make_auth("renter-2"), _token(booking))
        assert exc.value.code == "PERMISSION_DENIED"

    @pytest.mark.asyncio
    async def test_verify_current_booking(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"])
        result = await qr.verify(make_auth("owner-1", role="OWNER"), _token(booking))
        assert result.message == "Valid booking - Ready for check-in/check-out"
        assert result.data["can_check_in"] is True
        assert result.data["is_expired"] is False

    @pytest.mark.asyncio
    async def test_verify_future_booking(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], start=utcnow() + timedelta(hours=3))
        result = await qr.verify(make_auth("renter-1"), _token(booking))
        assert result.message.startswith("Valid booking - Check-in available at")
        assert result.data["can_check_in"] is False

    @pytest.mark.asyncio
    async def test_check_in_then_out(self, qr, db, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], status=BookingStatus.CONFIRMED)
        token = _token(booking)

        checked_in = await qr.verify(make_auth("renter-1", name="Renter"), token, "check-in")
        assert checked_in.message == "Check-in successful"
        assert checked_in.data["is_active"] is True

        checked_out = await qr.verify(make_auth("renter-1"), token, "check-out")
        assert checked_out.message == "Check-out successful"

        with db.get_session() as session:
            stored = session.get(Booking, booking.id)
            assert stored.status == BookingStatus.COMPLETED
            assert stored.checked_in_at is not None
            assert stored.checked_out_at is not None
            titles = {n.title for n in session.query(Notification).all()}
        assert {"Check-in Confirmed", "Check-out Complete"} <= titles

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.ACTIVE])
    @pytest.mark.asyncio
    async def test_check_in_rejects_closed_bookings(self, qr, db, marketplace, create_booking, status):
        booking = create_booking("renter-1", marketplace["space_id"], status=status)
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), _token(booking), "check-in")
        assert exc.value.code == "INVALID_BOOKING_STATUS"

        with db.get_session() as session:
            assert session.get(Booking, booking.id).status == status

    @pytest.mark.asyncio
    async def test_cancelled_booking_reports_no_check_in(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], status=BookingStatus.CANCELLED)
        result = await qr.verify(make_auth("renter-1"), _token(booking))
        assert result.data["can_check_in"] is False

    @pytest.mark.asyncio
    async def test_early_check_in(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], start=utcnow() + timedelta(hours=1))
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), _token(booking), "check-in")
        assert exc.value.code == "EARLY_CHECK_IN"

    @pytest.mark.asyncio
    async def test_late_check_in(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"], start=utcnow() - timedelta(hours=5))
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), _token(booking), "check-in")
        assert exc.value.code == "BOOKING_EXPIRED"

    @pytest.mark.asyncio
    async def test_check_out_requires_active(self, qr, marketplace, create_booking):
        booking = create_booking("renter-1", marketplace["space_id"])
        with pytest.raises(ValidationError) as exc:
            await qr.verify(make_auth("renter-1"), _token(booking), "check-out")
        assert exc.value.code == "NOT_ACTIVE"

    @pytest.mark.asyncio
    async def test_space_token_owner_only(self, qr, marketplace):
        token = generate_space_qr_code(marketplace["space_id"], "owner-1")

        result = await qr.verify(make_auth("owner-1", role="OWNER"), token)
        assert result.message == "Parking space verified successfully"
        assert result.data["space_id"] == marketplace["space_id"]

        with pytest.raises(PermissionError):
            await qr.verify(make_auth("renter-1"), token)

        admin = await qr.verify(make_auth("admin-1", role="ADMIN"), token)
        assert admin.data["title"] == "Covered garage spot"
