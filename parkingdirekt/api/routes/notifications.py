"""Notification endpoints; callers only see and change their own."""
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from parkingdirekt.api.responses import paginated, success
from parkingdirekt.db.models.schemas import NotificationBulkRequest, NotificationUpdate
from parkingdirekt.dependencies import CurrentUser, get_notification_service
from parkingdirekt.services.notifications import NotificationService

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

Notifications = Annotated[NotificationService, Depends(get_notification_service)]


@router.get("")
async def list_notifications(
    auth: CurrentUser,
    service: Notifications,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
) -> dict[str, Any]:
    notifications, total, unread_count = await service.list_notifications(auth, page, limit, unread_only)
    return paginated(notifications, page, limit, total, unread_count=unread_count)


@router.post("/bulk")
async def bulk_update_notifications(
    data: NotificationBulkRequest,
    auth: CurrentUser,
    service: Notifications,
) -> dict[str, Any]:
    count = await service.bulk_update(auth, data.action, data.notification_ids)
    return success({"affected": count}, f"{count} notifications updated")


@router.patch("/{notification_id}")
async def update_notification(
    notification_id: str,
    data: NotificationUpdate,
    auth: CurrentUser,
    service: Notifications,
) -> dict[str, Any]:
    notification = await service.set_read(notification_id, auth, data.is_read)
    return success(notification, "Notification updated successfully")


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, auth: CurrentUser, service: Notifications) -> dict[str, Any]:
    await service.delete_notification(notification_id, auth)
    return success(message="Notification deleted successfully")
