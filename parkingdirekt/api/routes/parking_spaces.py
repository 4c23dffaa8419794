"""Parking space listing endpoints."""
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, status

from parkingdirekt.api.responses import paginated, success
from parkingdirekt.db.models import SpaceType
from parkingdirekt.db.models.schemas import (
    ParkingSpaceCreate,
    ParkingSpaceUpdate,
    SpaceSearchParams,
)
from parkingdirekt.dependencies import CurrentUser, get_parking_space_service
from parkingdirekt.services.parking_spaces import ParkingSpaceService

router = APIRouter(prefix="/api/parking-spaces", tags=["parking-spaces"])

SpaceService = Annotated[ParkingSpaceService, Depends(get_parking_space_service)]


@router.get("")
async def list_parking_spaces(
    service: SpaceService,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    space_type: Optional[SpaceType] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius: float = Query(10.0, gt=0),
) -> dict[str, Any]:
    """Public search over active spaces."""
    filters = SpaceSearchParams(
        search=search,
        space_type=space_type,
        min_price=min_price,
        max_price=max_price,
        latitude=latitude,
        longitude=longitude,
        radius=radius,
    )
    spaces, total = await service.list_spaces(filters, page, limit)
    return paginated(spaces, page, limit, total)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_parking_space(
    data: ParkingSpaceCreate,
    auth: CurrentUser,
    service: SpaceService,
) -> dict[str, Any]:
    space = await service.create_space(auth, data)
    return success(space, "Parking space created successfully")


@router.get("/{space_id}")
async def get_parking_space(space_id: str, service: SpaceService) -> dict[str, Any]:
    return success(await service.get_space(space_id))


@router.put("/{space_id}")
async def update_parking_space(
    space_id: str,
    data: ParkingSpaceUpdate,
    auth: CurrentUser,
    service: SpaceService,
) -> dict[str, Any]:
    space = await service.update_space(space_id, auth, data)
    return success(space, "Parking space updated successfully")


@router.delete("/{space_id}")
async def delete_parking_space(space_id: str, auth: CurrentUser, service: SpaceService) -> dict[str, Any]:
    await service.delete_space(space_id, auth)
    return success(message="Parking space deleted successfully")
