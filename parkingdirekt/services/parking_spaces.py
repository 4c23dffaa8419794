"""Parking space listings."""
import logging
import math
from typing import Any, Iterable

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.auth.roles import Role
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import Booking, ParkingSpace, Review
from parkingdirekt.db.models.schemas import (
    ParkingSpaceCreate,
    ParkingSpaceUpdate,
    ParkingSpaceView,
    SpaceSearchParams,
)
from parkingdirekt.exceptions import NotFoundError, PermissionError
from parkingdirekt.services.qr_codes import generate_space_qr_code

logger = logging.getLogger(__name__)

MILES_PER_DEGREE = 69.0


def bounding_box(latitude: float, longitude: float, radius_miles: float) -> tuple[float, float, float, float]:
    """
    Rough lat/lng box around a point.

    Returns:
        (min_lat, max_lat, min_lng, max_lng)
    """
    lat_range = radius_miles / MILES_PER_DEGREE
    cos_lat = abs(math.cos(math.radians(latitude)))
    # Longitude degrees shrink towards the poles; clamp so the box stays finite
    lng_range = radius_miles / (max(cos_lat, 1e-6) * MILES_PER_DEGREE)
    return (
        latitude - lat_range,
        latitude + lat_range,
        longitude - lng_range,
        longitude + lng_range,
    )


class ParkingSpaceService:
    """CRUD and search for parking spaces."""

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db

    def _load(self, session: Session, space_id: str) -> ParkingSpace:
        space = session.get(ParkingSpace, space_id)
        if space is None:
            raise NotFoundError("Parking space", space_id)
        return space

    @staticmethod
    def _check_can_write(auth: AuthContext, space: ParkingSpace) -> None:
        if space.owner_id != auth.user_id and not auth.is_admin:
            raise PermissionError("Forbidden")

    def _counts(self, session: Session, space_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        ids = list(space_ids)
        stats: dict[str, dict[str, Any]] = {space_id: {} for space_id in ids}
        if not ids:
            return stats

        review_rows = (
            session.query(Review.space_id, func.count(Review.id), func.avg(Review.rating))
            .filter(Review.space_id.in_(ids))
            .group_by(Review.space_id)
            .all()
        )
        for space_id, count, average in review_rows:
            stats[space_id]["review_count"] = count
            stats[space_id]["average_rating"] = round(float(average), 1) if average is not None else None

        booking_rows = (
            session.query(Booking.space_id, func.count(Booking.id))
            .filter(Booking.space_id.in_(ids))
            .group_by(Booking.space_id)
            .all()
        )
        for space_id, count in booking_rows:
            stats[space_id]["booking_count"] = count
        return stats

    def _view(self, space: ParkingSpace, stats: dict[str, Any]) -> ParkingSpaceView:
        view = ParkingSpaceView.model_validate(space)
        return view.model_copy(update=stats)

    async def list_spaces(
        self,
        filters: SpaceSearchParams,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[ParkingSpaceView], int]:
        """
        Search active spaces, newest first.

        Text search matches title, description and address. When both
        latitude and longitude are given, results are limited to a box of
        ``radius`` miles around the point.
        """
        with self.db.get_session() as session:
            query = session.query(ParkingSpace).filter(ParkingSpace.is_active.is_(True))

            if filters.search:
                pattern = f"%{filters.search}%"
                query = query.filter(
                    or_(
                        ParkingSpace.title.ilike(pattern),
                        ParkingSpace.description.ilike(pattern),
                        ParkingSpace.address.ilike(pattern),
                    )
                )
            if filters.space_type is not None:
                query = query.filter(ParkingSpace.space_type == filters.space_type)
            if filters.min_price is not None:
                query = query.filter(ParkingSpace.hourly_rate >= filters.min_price)
            if filters.max_price is not None:
                query = query.filter(ParkingSpace.hourly_rate <= filters.max_price)
            if filters.latitude is not None and filters.longitude is not None:
                min_lat, max_lat, min_lng, max_lng = bounding_box(
                    filters.latitude, filters.longitude, filters.radius
                )
                query = query.filter(
                    ParkingSpace.latitude.between(min_lat, max_lat),
                    ParkingSpace.longitude.between(min_lng, max_lng),
                )

            total = query.count()
            rows = (
                query.order_by(ParkingSpace.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            stats = self._counts(session, (row.id for row in rows))
            return [self._view(row, stats[row.id]) for row in rows], total

    async def get_space(self, space_id: str) -> ParkingSpaceView:
        with self.db.get_session() as session:
            space = self._load(session, space_id)
            stats = self._counts(session, [space.id])
            return self._view(space, stats[space.id])

    async def create_space(self, auth: AuthContext, data: ParkingSpaceCreate) -> ParkingSpaceView:
        """
        List a new space for the calling owner.

        Raises:
            PermissionError: Caller isn't an owner
        """
        if not auth.has_role(Role.OWNER.value):
            raise PermissionError("Only owners can create parking spaces")

        with self.db.get_session() as session:
            space = ParkingSpace(owner_id=auth.user_id, **data.model_dump())
            session.add(space)
            session.flush()
            space.qr_code = generate_space_qr_code(space.id, auth.user_id)
            session.flush()
            logger.info("Parking space created", extra={"space_id": space.id, "owner_id": auth.user_id})
            return self._view(space, {})

    async def update_space(
        self,
        space_id: str,
        auth: AuthContext,
        data: ParkingSpaceUpdate,
    ) -> ParkingSpaceView:
        with self.db.get_session() as session:
            space = self._load(session, space_id)
            self._check_can_write(auth, space)
            for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
                setattr(space, field, value)
            session.flush()
            stats = self._counts(session, [space.id])
            logger.info("Parking space updated", extra={"space_id": space.id, "actor_id": auth.user_id})
            return self._view(space, stats[space.id])

    async def delete_space(self, space_id: str, auth: AuthContext) -> None:
        with self.db.get_session() as session:
            space = self._load(session, space_id)
            self._check_can_write(auth, space)
            session.delete(space)
        logger.info("Parking space deleted", extra={"space_id": space_id, "actor_id": auth.user_id})
