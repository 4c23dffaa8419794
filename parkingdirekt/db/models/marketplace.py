"""Marketplace models: users, parking spaces, bookings, reviews, notifications."""
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from parkingdirekt.db.models.base import Base, new_id
from parkingdirekt.utils.clock import utcnow


class BookingStatus(PyEnum):
    """Booking lifecycle states."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Bookings in these states hold their time slot
OPEN_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.ACTIVE)


class SpaceType(PyEnum):
    """Kinds of parking space."""

    INDOOR = "INDOOR"
    OUTDOOR = "OUTDOOR"
    GARAGE = "GARAGE"
    DRIVEWAY = "DRIVEWAY"


class User(Base):
    """Platform account (renter, owner or administrator)."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="USER")
    phone = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    spaces = relationship("ParkingSpace", back_populates="owner")
    bookings = relationship("Booking", back_populates="user")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, role={self.role})>"


class ParkingSpace(Base):
    """A rentable parking space listed by an owner."""

    __tablename__ = "parking_spaces"
    __table_args__ = (
        Index("idx_parking_spaces_owner_id", "owner_id"),
        Index("idx_parking_spaces_location", "latitude", "longitude"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    address = Column(String(500), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    hourly_rate = Column(Float, nullable=False)
    daily_rate = Column(Float, nullable=True)
    monthly_rate = Column(Float, nullable=True)
    space_type = Column(SQLEnum(SpaceType, name="space_type"), nullable=False)
    vehicle_types = Column(JSON, nullable=False, default=list)
    size_dimensions = Column(String(100), nullable=True)
    access_instructions = Column(Text, nullable=True)
    photos = Column(JSON, nullable=False, default=list)
    qr_code = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="spaces")
    bookings = relationship("Booking", back_populates="space", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<ParkingSpace(id={self.id}, title={self.title}, is_active={self.is_active})>"


class Booking(Base):
    """A reservation of a space for a half-open time range [start_time, end_time)."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_space_window", "space_id", "start_time", "end_time"),
        Index("idx_bookings_user_id", "user_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    space_id = Column(String(36), ForeignKey("parking_spaces.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    total_price = Column(Float, nullable=False)
    status = Column(
        SQLEnum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    qr_code = Column(String(255), nullable=True)
    checked_in_at = Column(DateTime, nullable=True)
    checked_out_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="bookings")
    space = relationship("ParkingSpace", back_populates="bookings")

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Booking(id={self.id}, "
            f"space_id={self.space_id}, "
            f"status={self.status.value if self.status else None})>"
        )


class Review(Base):
    """Rating left by one booking participant for the other."""

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("booking_id", "reviewer_id", name="uq_reviews_booking_reviewer"),
        Index("idx_reviews_space_id", "space_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    space_id = Column(String(36), ForeignKey("parking_spaces.id", ondelete="CASCADE"), nullable=False)
    reviewer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Review(id={self.id}, booking_id={self.booking_id}, rating={self.rating})>"


class Notification(Base):
    """In-app notification for a user."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("idx_notifications_user_id", "user_id"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    # booking, payment, review, system
    type = Column(String(20), nullable=False, default="system")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Notification(id={self.id}, user_id={self.user_id}, is_read={self.is_read})>"


class PlatformRevenue(Base):
    """Commission split recorded when a booking completes."""

    __tablename__ = "platform_revenue"
    __table_args__ = (
        Index("idx_platform_revenue_created_at", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    booking_id = Column(String(36), ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, unique=True)
    amount = Column(Float, nullable=False)
    commission_percent = Column(Float, nullable=False)
    commission_amount = Column(Float, nullable=False)
    owner_amount = Column(Float, nullable=False)
    currency = Column(String(3), nullable=False, default="EUR")
    status = Column(String(20), nullable=False, default="completed")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PlatformRevenue(booking_id={self.booking_id}, "
            f"amount={self.amount}, "
            f"commission={self.commission_amount})>"
        )
