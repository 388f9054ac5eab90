"""User notifications."""

from mediaforge.notifications.models import Notification, NotificationType
from mediaforge.notifications.service import NotificationService, notification_service

__all__ = ["Notification", "NotificationService", "NotificationType", "notification_service"]
