"""Per-user notification mailbox.

Every read and mutation filters on the owning user id, so a caller can
never touch another user's notifications; such attempts affect 0 rows.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, update

from mediaforge.logging_config import get_logger
from mediaforge.notifications.models import Notification, NotificationType
from mediaforge.settings import settings
from mediaforge.storage.db import Database, db
from mediaforge.storage.models import utcnow

logger = get_logger(__name__)


class NotificationService:
    """Service for creating and managing user notifications."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def create_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType | str = NotificationType.INFO,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        with self.db.session() as session:
            notification = Notification(
                user_id=user_id,
                title=title,
                message=message,
                type=NotificationType(type),
                is_read=False,
                metadata_json=metadata,
            )
            session.add(notification)
            session.flush()

        self.logger.info("notification_created", user_id=user_id, type=notification.type.value)
        return notification

    def create_welcome_notification(self, user_id: str, user_name: str) -> Notification:
        credits = settings.free_credits_for_new_users
        message = (
            f"Welcome {user_name}! Thank you for joining MediaForge AI. "
            f"You've been given {credits} free credits to get started. "
            "Explore our AI video generation, map animations, and image creation features. "
            "Happy creating!"
        )
        return self.create_notification(
            user_id,
            "Welcome to MediaForge AI! 🎉",
            message,
            NotificationType.WELCOME,
            {"credits": credits, "userName": user_name},
        )

    def create_credit_notification(
        self,
        user_id: str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> Notification:
        return self.create_notification(user_id, title, message, NotificationType.CREDIT, metadata)

    def get_user_notifications(self, user_id: str, limit: int = 50) -> list[Notification]:
        """Get user's notifications, newest first."""
        with self.db.session() as session:
            return session.query(Notification).filter(
                Notification.user_id == user_id
            ).order_by(
                Notification.created_at.desc(),
                Notification.id.desc(),
            ).limit(limit).all()

    def get_unread_count(self, user_id: str) -> int:
        with self.db.session() as session:
            return session.query(func.count(Notification.id)).filter(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            ).scalar() or 0

    def mark_as_read(self, notification_id: int, user_id: str) -> int:
        """Mark one of the user's notifications as read.

        Returns:
            Number of rows updated (0 if missing or not owned)
        """
        return self._update(
            user_id,
            Notification.id == notification_id,
        )

    def mark_all_as_read(self, user_id: str) -> int:
        return self._update(user_id, Notification.is_read.is_(False))

    def delete_notification(self, notification_id: int, user_id: str) -> int:
        """Delete one of the user's notifications.

        Returns:
            Number of rows deleted (0 if missing or not owned)
        """
        return self._delete(user_id, Notification.id == notification_id)

    def delete_read_notifications(self, user_id: str) -> int:
        return self._delete(user_id, Notification.is_read.is_(True))

    def _update(self, user_id: str, *criteria) -> int:
        with self.db.session() as session:
            result = session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, *criteria)
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
        self.logger.debug("notifications_marked_read", user_id=user_id, count=result.rowcount)
        return result.rowcount

    def _delete(self, user_id: str, *criteria) -> int:
        with self.db.session() as session:
            result = session.execute(
                delete(Notification)
                .where(Notification.user_id == user_id, *criteria)
                .execution_options(synchronize_session=False)
            )
        self.logger.debug("notifications_deleted", user_id=user_id, count=result.rowcount)
        return result.rowcount


def format_notification_date(date: datetime, now: datetime | None = None) -> str:
    """Render a timestamp relative to now ("Just now", "5m ago", "Jan 5, 2026")."""
    now = now or utcnow()
    seconds = (now - date).total_seconds()
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)

    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return f"{date.strftime('%b')} {date.day}, {date.year}"


# Singleton instance
notification_service = NotificationService()
