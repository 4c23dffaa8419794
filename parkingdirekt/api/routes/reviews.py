"""Review endpoints."""
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, status

from parkingdirekt.api.responses import paginated, success
from parkingdirekt.db.models.schemas import ReviewCreate
from parkingdirekt.dependencies import CurrentUser, get_review_service
from parkingdirekt.services.reviews import ReviewService

router = APIRouter(prefix="/api/reviews", tags=["reviews"])

Reviews = Annotated[ReviewService, Depends(get_review_service)]


@router.get("")
async def list_reviews(
    service: Reviews,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    space_id: Optional[str] = None,
    reviewer_id: Optional[str] = None,
    rating: Optional[int] = Query(None, ge=1, le=5),
) -> dict[str, Any]:
    """Public listing with average and distribution over every matching review."""
    reviews, total, stats = await service.list_reviews(page, limit, space_id, reviewer_id, rating)
    return paginated(reviews, page, limit, total, stats=stats)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_review(data: ReviewCreate, auth: CurrentUser, service: Reviews) -> dict[str, Any]:
    review = await service.create_review(auth, data)
    return success(review, "Review created successfully")
