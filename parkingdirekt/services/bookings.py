"""
Booking lifecycle: creation with overlap checks, role-based status changes
and commission recording on completion.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import (
    OPEN_BOOKING_STATUSES,
    Booking,
    BookingStatus,
    ParkingSpace,
)
from parkingdirekt.db.models.schemas import BookingCreate, BookingView
from parkingdirekt.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionError,
    ValidationError,
)
from parkingdirekt.services.commission import CommissionService, calculate_commission
from parkingdirekt.services.notifications import notify
from parkingdirekt.services.qr_codes import generate_booking_qr_code

logger = logging.getLogger(__name__)

OWNER_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.ACTIVE, BookingStatus.COMPLETED)
RENTER_STATUSES = (BookingStatus.CANCELLED,)

# Moves permitted from each status; COMPLETED and CANCELLED are final
STATUS_TRANSITIONS = {
    BookingStatus.PENDING: (
        BookingStatus.CONFIRMED,
        BookingStatus.ACTIVE,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    ),
    BookingStatus.CONFIRMED: (BookingStatus.ACTIVE, BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    BookingStatus.ACTIVE: (BookingStatus.COMPLETED, BookingStatus.CANCELLED),
    BookingStatus.COMPLETED: (),
    BookingStatus.CANCELLED: (),
}

CHECK_IN_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)

_STATUS_TITLES = {
    BookingStatus.PENDING: "Booking Pending",
    BookingStatus.CONFIRMED: "Booking Confirmed",
    BookingStatus.ACTIVE: "Booking Active",
    BookingStatus.COMPLETED: "Booking Completed",
    BookingStatus.CANCELLED: "Booking Cancelled",
}


def ranges_overlap(
    start: datetime,
    end: datetime,
    other_start: datetime,
    other_end: datetime,
) -> bool:
    """Half-open [start, end) overlap; touching ranges do not overlap."""
    return start < other_end and end > other_start


def booking_price(hourly_rate: float, start: datetime, end: datetime) -> float:
    hours = (end - start).total_seconds() / 3600
    return round(hours * hourly_rate, 2)


def allowed_statuses(auth: AuthContext, booking: Booking, owner_id: str) -> tuple[BookingStatus, ...]:
    """
    Statuses the caller may move a booking to.

    The space owner confirms, activates and completes, the renter cancels,
    admins may set anything.
    """
    if owner_id == auth.user_id:
        return OWNER_STATUSES
    if booking.user_id == auth.user_id:
        return RENTER_STATUSES
    if auth.is_admin:
        return tuple(BookingStatus)
    return ()


class BookingService:
    """Create, read and transition bookings."""

    def __init__(self, db: DatabaseConnectionManager, commission: CommissionService):
        self.db = db
        self.commission = commission

    def _load(self, session: Session, booking_id: str) -> Booking:
        booking = session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    def _is_participant(auth: AuthContext, booking: Booking) -> bool:
        return booking.user_id == auth.user_id or booking.space.owner_id == auth.user_id

    async def list_bookings(
        self,
        auth: AuthContext,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
    ) -> tuple[list[BookingView], int]:
        """
        List bookings visible to the caller.

        Owners see bookings on their spaces, everyone else sees their own.
        """
        with self.db.get_session() as session:
            query = session.query(Booking)
            if auth.has_role(Role.OWNER.value):
                query = query.join(ParkingSpace, Booking.space_id == ParkingSpace.id).filter(
                    ParkingSpace.owner_id == auth.user_id
                )
            else:
                query = query.filter(Booking.user_id == auth.user_id)
            if status is not None:
                query = query.filter(Booking.status == status)

            total = query.count()
            rows = (
                query.order_by(Booking.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [BookingView.model_validate(row) for row in rows], total

    async def create_booking(self, auth: AuthContext, data: BookingCreate) -> BookingView:
        """
        Book a space.

        Raises:
            PermissionError: Caller is an owner
            NotFoundError: Space doesn't exist
            ValidationError: Space is inactive
            ConflictError: Range overlaps an open booking on the same space
        """
        if auth.has_role(Role.OWNER.value):
            raise PermissionError("Owners cannot book parking spaces")

        with self.db.get_session() as session:
            space = session.get(ParkingSpace, data.space_id)
            if space is None:
                raise NotFoundError("Parking space", data.space_id)
            if not space.is_active:
                raise ValidationError("Parking space is not available", code="SPACE_UNAVAILABLE")

            conflict = (
                session.query(Booking.id)
                .filter(
                    Booking.space_id == space.id,
                    Booking.status.in_(OPEN_BOOKING_STATUSES),
                    Booking.start_time < data.end_time,
                    Booking.end_time > data.start_time,
                )
                .first()
            )
            if conflict is not None:
                raise ConflictError(
                    "Parking space is already booked for this time period",
                    code="BOOKING_CONFLICT",
                )

            total_price = data.total_price
            if total_price is None:
                total_price = booking_price(space.hourly_rate, data.start_time, data.end_time)

            booking = Booking(
                user_id=auth.user_id,
                space_id=space.id,
                start_time=data.start_time,
                end_time=data.end_time,
                total_price=total_price,
                status=BookingStatus.PENDING,
            )
            session.add(booking)
            session.flush()
            booking.qr_code = generate_booking_qr_code(booking.id, auth.user_id)

            notify(
                session,
                space.owner_id,
                "New Booking Request",
                f'{auth.name or "A user"} wants to book your parking space "{space.title}"',
                "booking",
            )
            session.flush()

            logger.info(
                "Booking created",
                extra={"booking_id": booking.id, "space_id": space.id, "user_id": auth.user_id},
            )
            return BookingView.model_validate(booking)

    async def get_booking(self, booking_id: str, auth: AuthContext) -> BookingView:
        with self.db.get_session() as session:
            booking = self._load(session, booking_id)
            if not (self._is_participant(auth, booking) or auth.is_admin):
                raise PermissionError("Forbidden")
            return BookingView.model_validate(booking)

    async def update_status(
        self,
        booking_id: str,
        auth: AuthContext,
        status: BookingStatus,
    ) -> BookingView:
        """
        Move a booking to a new status.

        The other party is notified. Completing a booking records the
        platform commission for its total price.

        Raises:
            NotFoundError: Booking doesn't exist
            PermissionError: Caller may not set this status
            ValidationError: The current status can't move to the new one
        """
        percent = None
        if status == BookingStatus.COMPLETED:
            percent = await self.commission.get_commission_percent()

        with self.db.get_session() as session:
            booking = self._load(session, booking_id)
            space = booking.space
            if status not in allowed_statuses(auth, booking, space.owner_id):
                raise PermissionError("You cannot change the booking status to this value")

            previous = booking.status
            if status not in STATUS_TRANSITIONS[previous]:
                raise ValidationError(
                    f"Cannot change a {previous.value.lower()} booking to {status.value.lower()}",
                    code="INVALID_STATUS_TRANSITION",
                )
            booking.status = status

            if percent is not None:
                split = calculate_commission(booking.total_price, percent)
                self.commission.record_revenue(session, split, booking_id=booking.id)

            self._notify_status_change(session, auth, booking, space, status)
            session.flush()

            logger.info(
                "Booking status changed",
                extra={
                    "booking_id": booking.id,
                    "from_status": previous.value if previous else None,
                    "to_status": status.value,
                    "actor_id": auth.user_id,
                },
            )
            return BookingView.model_validate(booking)

    def _notify_status_change(
        self,
        session: Session,
        auth: AuthContext,
        booking: Booking,
        space: ParkingSpace,
        status: BookingStatus,
    ) -> None:
        title = _STATUS_TITLES[status]
        renter_message = f'Your booking for "{space.title}" is now {status.value.lower()}'
        if status == BookingStatus.COMPLETED:
            renter_message = f'Your booking for "{space.title}" has been completed. Please leave a review.'
        owner_message = f'The booking for "{space.title}" is now {status.value.lower()}'

        recipients = []
        if auth.user_id == space.owner_id:
            recipients.append((booking.user_id, renter_message))
        elif auth.user_id == booking.user_id:
            recipients.append((space.owner_id, owner_message))
        else:
            recipients.append((booking.user_id, renter_message))
            recipients.append((space.owner_id, owner_message))

        for user_id, message in recipients:
            notify(session, user_id, title, message, "booking")

    async def delete_booking(self, booking_id: str, auth: AuthContext) -> None:
        if not auth.is_admin:
            raise PermissionError("Only admins can delete bookings")
        with self.db.get_session() as session:
            booking = self._load(session, booking_id)
            session.delete(booking)
        logger.info("Booking deleted", extra={"booking_id": booking_id, "admin_id": auth.user_id})
