"""Reviews left by booking participants after completion."""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import Booking, BookingStatus, Review, User
from parkingdirekt.db.models.schemas import (
    RatingBucket,
    ReviewCreate,
    ReviewStats,
    ReviewView,
)
from parkingdirekt.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionError,
    ValidationError,
)
from parkingdirekt.services.notifications import notify

logger = logging.getLogger(__name__)


class ReviewService:
    """Create and list reviews."""

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db

    def _to_view(self, review: Review, reviewer: Optional[User]) -> ReviewView:
        view = ReviewView.model_validate(review)
        if reviewer is not None:
            view = view.model_copy(update={"reviewer": {"id": reviewer.id, "name": reviewer.name}})
        return view

    async def list_reviews(
        self,
        page: int = 1,
        limit: int = 10,
        space_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        rating: Optional[int] = None,
    ) -> tuple[list[ReviewView], int, ReviewStats]:
        """
        List reviews, newest first, with stats over every matching review.

        Returns:
            (page of reviews, total matching, stats)
        """
        with self.db.get_session() as session:
            query = session.query(Review)
            if space_id:
                query = query.filter(Review.space_id == space_id)
            if reviewer_id:
                query = query.filter(Review.reviewer_id == reviewer_id)
            if rating is not None:
                query = query.filter(Review.rating == rating)

            total = query.count()
            rows = (
                query.order_by(Review.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )

            reviewer_ids = {row.reviewer_id for row in rows}
            reviewers = {
                user.id: user
                for user in session.query(User).filter(User.id.in_(reviewer_ids)).all()
            } if reviewer_ids else {}

            counts = dict(
                query.with_entities(Review.rating, func.count(Review.id))
                .group_by(Review.rating)
                .all()
            )
            reviews = [self._to_view(row, reviewers.get(row.reviewer_id)) for row in rows]

        stats = build_stats(counts)
        return reviews, total, stats

    async def create_review(self, auth: AuthContext, data: ReviewCreate) -> ReviewView:
        """
        Review a completed booking.

        The renter reviews the space owner; the owner (or an admin) reviews
        the renter.

        Raises:
            NotFoundError: Booking doesn't exist
            PermissionError: Caller isn't part of the booking
            ValidationError: Booking isn't completed
            ConflictError: Caller already reviewed this booking
        """
        try:
            with self.db.get_session() as session:
                booking = session.get(Booking, data.booking_id)
                if booking is None:
                    raise NotFoundError("Booking", data.booking_id)

                space = booking.space
                is_renter = booking.user_id == auth.user_id
                is_owner = space.owner_id == auth.user_id
                if not (is_renter or is_owner or auth.is_admin):
                    raise PermissionError("You can only review bookings you are involved in")

                if booking.status != BookingStatus.COMPLETED:
                    raise ValidationError(
                        "You can only review completed bookings",
                        code="BOOKING_NOT_COMPLETED",
                    )

                existing = (
                    session.query(Review.id)
                    .filter(Review.booking_id == booking.id, Review.reviewer_id == auth.user_id)
                    .first()
                )
                if existing is not None:
                    raise ConflictError("You have already reviewed this booking", code="REVIEW_EXISTS")

                reviewee_id = space.owner_id if is_renter else booking.user_id
                review = Review(
                    booking_id=booking.id,
                    space_id=space.id,
                    reviewer_id=auth.user_id,
                    reviewee_id=reviewee_id,
                    rating=data.rating,
                    comment=data.comment or "",
                )
                session.add(review)

                notify(
                    session,
                    reviewee_id,
                    "New Review",
                    f'{auth.name or "Someone"} left you a {data.rating}-star review for "{space.title}"',
                    "review",
                )
                session.flush()

                reviewer = session.get(User, auth.user_id)
                view = self._to_view(review, reviewer)
        except IntegrityError as e:
            # Concurrent duplicate hit the (booking_id, reviewer_id) constraint
            raise ConflictError("You have already reviewed this booking", code="REVIEW_EXISTS") from e

        logger.info(
            "Review created",
            extra={"review_id": view.id, "booking_id": data.booking_id, "rating": data.rating},
        )
        return view


def build_stats(counts: dict[int, int]) -> ReviewStats:
    """Average (one decimal) and 1-5 distribution from per-rating counts."""
    total = sum(counts.values())
    average = sum(rating * count for rating, count in counts.items()) / total if total else 0.0
    return ReviewStats(
        average_rating=round(average, 1),
        total_reviews=total,
        rating_distribution=[
            RatingBucket(rating=rating, count=counts.get(rating, 0)) for rating in range(1, 6)
        ],
    )
