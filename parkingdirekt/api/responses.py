"""Success envelopes shared by the route modules."""
import math
from typing import Any, Optional

from pydantic import BaseModel

from parkingdirekt.db.models.schemas import Pagination


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, list):
        return [_dump(item) for item in value]
    if isinstance(value, dict):
        return {key: _dump(item) for key, item in value.items()}
    return value


def success(data: Any = None, message: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = _dump(data)
    if message:
        body["message"] = message
    return body


def paginate(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, total=total, totalPages=math.ceil(total / limit) if limit else 0)


def paginated(data: list[Any], page: int, limit: int, total: int, **extra: Any) -> dict[str, Any]:
    """Envelope with a ``pagination`` block; extra keys are added at the top level."""
    body = success(data)
    body["data"] = body.get("data", [])
    body["pagination"] = paginate(page, limit, total).model_dump()
    for key, value in extra.items():
        body[key] = _dump(value)
    return body
