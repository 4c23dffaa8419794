"""Booking endpoints."""
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, status

from parkingdirekt.api.responses import paginated, success
from parkingdirekt.db.models import BookingStatus
from parkingdirekt.db.models.schemas import BookingCreate, BookingUpdate
from parkingdirekt.dependencies import CurrentUser, get_booking_service
from parkingdirekt.services.bookings import BookingService

router = APIRouter(prefix="/api/bookings", tags=["bookings"])

Bookings = Annotated[BookingService, Depends(get_booking_service)]


@router.get("")
async def list_bookings(
    auth: CurrentUser,
    service: Bookings,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[BookingStatus] = None,
) -> dict[str, Any]:
    bookings, total = await service.list_bookings(auth, page, limit, status)
    return paginated(bookings, page, limit, total)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_booking(data: BookingCreate, auth: CurrentUser, service: Bookings) -> dict[str, Any]:
    """Book a space; 409 when the range overlaps an open booking."""
    booking = await service.create_booking(auth, data)
    return success(booking, "Booking created successfully")


@router.get("/{booking_id}")
async def get_booking(booking_id: str, auth: CurrentUser, service: Bookings) -> dict[str, Any]:
    return success(await service.get_booking(booking_id, auth))


@router.put("/{booking_id}")
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    auth: CurrentUser,
    service: Bookings,
) -> dict[str, Any]:
    booking = await service.update_status(booking_id, auth, data.status)
    return success(booking, "Booking updated successfully")


@router.delete("/{booking_id}")
async def delete_booking(booking_id: str, auth: CurrentUser, service: Bookings) -> dict[str, Any]:
    await service.delete_booking(booking_id, auth)
    return success(message="Booking deleted successfully")
