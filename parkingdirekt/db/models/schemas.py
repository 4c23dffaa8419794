"""Pydantic request and response models for the marketplace API."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parkingdirekt.utils.clock import to_naive_utc

from .marketplace import BookingStatus, SpaceType

VehicleType = Literal["CAR", "MOTORCYCLE", "TRUCK", "SUV"]


class UserSummary(BaseModel):
    """Public slice of a user attached to other resources."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: Optional[str] = None


class Pagination(BaseModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    totalPages: int = Field(..., ge=0, description="ceil(total / limit)")


# Parking spaces

class ParkingSpaceCreate(BaseModel):
    """Request model for listing a new parking space."""
    title: str = Field(..., min_length=3, max_length=255)
    description: str = Field(..., min_length=10)
    address: str = Field(..., min_length=5, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    hourly_rate: float = Field(..., ge=0, description="Price per hour")
    daily_rate: Optional[float] = Field(None, ge=0)
    monthly_rate: Optional[float] = Field(None, ge=0)
    space_type: SpaceType
    vehicle_types: list[VehicleType] = Field(default_factory=list)
    size_dimensions: Optional[str] = Field(None, max_length=100)
    access_instructions: Optional[str] = None
    photos: list[str] = Field(default_factory=list)


class ParkingSpaceUpdate(BaseModel):
    """Partial update; only provided fields change."""
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = Field(None, min_length=10)
    address: Optional[str] = Field(None, min_length=5, max_length=500)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    hourly_rate: Optional[float] = Field(None, ge=0)
    daily_rate: Optional[float] = Field(None, ge=0)
    monthly_rate: Optional[float] = Field(None, ge=0)
    space_type: Optional[SpaceType] = None
    vehicle_types: Optional[list[VehicleType]] = None
    size_dimensions: Optional[str] = Field(None, max_length=100)
    access_instructions: Optional[str] = None
    photos: Optional[list[str]] = None
    is_active: Optional[bool] = None


class ParkingSpaceView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    title: str
    description: str
    address: str
    latitude: float
    longitude: float
    hourly_rate: float
    daily_rate: Optional[float] = None
    monthly_rate: Optional[float] = None
    space_type: SpaceType
    vehicle_types: list[str] = Field(default_factory=list)
    size_dimensions: Optional[str] = None
    access_instructions: Optional[str] = None
    photos: list[str] = Field(default_factory=list)
    qr_code: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
    owner: Optional[UserSummary] = None
    review_count: int = 0
    booking_count: int = 0
    average_rating: Optional[float] = None


class SpaceSearchParams(BaseModel):
    """Filters for the public space listing."""
    search: Optional[str] = None
    space_type: Optional[SpaceType] = None
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius: float = Field(10.0, gt=0, description="Search radius in miles")


# Bookings

class BookingCreate(BaseModel):
    """Request model for booking a space over [start_time, end_time)."""
    space_id: str = Field(..., min_length=1)
    start_time: datetime
    end_time: datetime
    total_price: Optional[float] = Field(
        None, ge=0, description="Computed from the hourly rate when omitted"
    )

    @model_validator(mode="after")
    def check_range(self) -> "BookingCreate":
        self.start_time = to_naive_utc(self.start_time)
        self.end_time = to_naive_utc(self.end_time)
        if self.start_time >= self.end_time:
            raise ValueError("End time must be after start time")
        return self


class BookingUpdate(BaseModel):
    status: BookingStatus


class SpaceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    address: str
    owner_id: str


class BookingView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    space_id: str
    start_time: datetime
    end_time: datetime
    total_price: float
    status: BookingStatus
    qr_code: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    user: Optional[UserSummary] = None
    space: Optional[SpaceSummary] = None


# Reviews

class ReviewCreate(BaseModel):
    booking_id: str = Field(..., min_length=1)
    rating: int = Field(..., ge=1, le=5, description="Star rating 1-5")
    comment: Optional[str] = Field(None, max_length=2000)


class ReviewView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    booking_id: str
    space_id: str
    reviewer_id: str
    reviewee_id: str
    rating: int
    comment: Optional[str] = None
    created_at: datetime
    reviewer: Optional[UserSummary] = None


class RatingBucket(BaseModel):
    rating: int
    count: int


class ReviewStats(BaseModel):
    average_rating: float = 0.0
    total_reviews: int = 0
    rating_distribution: list[RatingBucket] = Field(default_factory=list)


# Notifications

NotificationBulkAction = Literal["markAllRead", "markAllUnread", "deleteAll"]


class NotificationView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    message: str
    type: str
    is_read: bool
    created_at: datetime


class NotificationUpdate(BaseModel):
    is_read: bool


class NotificationBulkRequest(BaseModel):
    action: NotificationBulkAction
    notification_ids: list[str]


# QR verification

QRAction = Literal["verify", "check-in", "check-out"]


class VerifyQRRequest(BaseModel):
    qr_code: str = Field(..., min_length=1, description="QR code is required")
    action: QRAction = "verify"
