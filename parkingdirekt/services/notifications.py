"""In-app notifications."""
import logging

from sqlalchemy.orm import Session

from parkingdirekt.auth.models import AuthContext
from parkingdirekt.db.connection import DatabaseConnectionManager
from parkingdirekt.db.models import Notification
from parkingdirekt.db.models.schemas import NotificationBulkAction, NotificationView
from parkingdirekt.exceptions import NotFoundError, PermissionError

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("booking", "payment", "review", "system")


def notify(session: Session, user_id: str, title: str, message: str, type: str = "system") -> Notification:
    """Queue a notification inside the caller's transaction."""
    notification = Notification(user_id=user_id, title=title, message=message, type=type)
    session.add(notification)
    return notification


class NotificationService:
    """Read and manage a user's own notifications."""

    def __init__(self, db: DatabaseConnectionManager):
        self.db = db

    async def list_notifications(
        self,
        auth: AuthContext,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> tuple[list[NotificationView], int, int]:
        """
        List the caller's notifications, newest first.

        Returns:
            (page of notifications, total matching, unread count)
        """
        with self.db.get_session() as session:
            base = session.query(Notification).filter(Notification.user_id == auth.user_id)
            unread_count = base.filter(Notification.is_read.is_(False)).count()
            query = base.filter(Notification.is_read.is_(False)) if unread_only else base
            total = query.count()
            rows = (
                query.order_by(Notification.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return [NotificationView.model_validate(row) for row in rows], total, unread_count

    def _get_owned(self, session: Session, notification_id: str, auth: AuthContext, allow_admin: bool) -> Notification:
        notification = session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification", notification_id)
        if notification.user_id != auth.user_id and not (allow_admin and auth.is_admin):
            raise PermissionError("Forbidden")
        return notification

    async def set_read(self, notification_id: str, auth: AuthContext, is_read: bool) -> NotificationView:
        with self.db.get_session() as session:
            notification = self._get_owned(session, notification_id, auth, allow_admin=False)
            notification.is_read = is_read
            session.flush()
            return NotificationView.model_validate(notification)

    async def delete_notification(self, notification_id: str, auth: AuthContext) -> None:
        """Delete a notification (its owner or an admin)."""
        with self.db.get_session() as session:
            notification = self._get_owned(session, notification_id, auth, allow_admin=True)
            session.delete(notification)

    async def bulk_update(
        self,
        auth: AuthContext,
        action: NotificationBulkAction,
        notification_ids: list[str],
    ) -> int:
        """
        Apply a bulk action to the caller's notifications.

        Ids that belong to other users are ignored.

        Returns:
            Number of notifications affected

        Raises:
            NotFoundError: If none of the ids belong to the caller
        """
        with self.db.get_session() as session:
            owned = (
                session.query(Notification)
                .filter(
                    Notification.id.in_(notification_ids),
                    Notification.user_id == auth.user_id,
                )
            )
            count = owned.count()
            if count == 0:
                raise NotFoundError("Notifications")

            if action == "deleteAll":
                owned.delete(synchronize_session=False)
            else:
                owned.update(
                    {Notification.is_read: action == "markAllRead"},
                    synchronize_session=False,
                )

        logger.info(
            "Bulk notification update",
            extra={"user_id": auth.user_id, "action": action, "count": count},
        )
        return count