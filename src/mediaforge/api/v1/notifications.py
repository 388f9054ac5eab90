"""Notification API endpoints."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from mediaforge.api.deps import get_notification_service
from mediaforge.auth.middleware import require_auth
from mediaforge.auth.models import Identity
from mediaforge.errors import InvalidInputError
from mediaforge.notifications.service import NotificationService, format_notification_date

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str
    notification_id: int | None = Field(default=None, alias="notificationId")


ACTIONS_NEEDING_ID = {"markAsRead", "delete"}


@router.get("")
def list_notifications(
    identity: Identity = Depends(require_auth),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Latest notifications plus the unread count."""
    items = notifications.get_user_notifications(identity.user_id)

    return {
        "notifications": [
            {**item.to_dict(), "formattedDate": format_notification_date(item.created_at)}
            for item in items
        ],
        "unreadCount": notifications.get_unread_count(identity.user_id),
    }


@router.patch("")
def update_notifications(
    body: NotificationAction,
    identity: Identity = Depends(require_auth),
    notifications: NotificationService = Depends(get_notification_service),
):
    """Apply a read/delete action to the caller's notifications.

    Actions on another user's notification match nothing and still succeed.
    """
    if body.action in ACTIONS_NEEDING_ID and body.notification_id is None:
        raise InvalidInputError("Notification ID required")

    if body.action == "markAsRead":
        notifications.mark_as_read(body.notification_id, identity.user_id)
    elif body.action == "markAllAsRead":
        notifications.mark_all_as_read(identity.user_id)
    elif body.action == "delete":
        notifications.delete_notification(body.notification_id, identity.user_id)
    elif body.action == "deleteRead":
        notifications.delete_read_notifications(identity.user_id)
    else:
        raise InvalidInputError("Invalid action")

    return {"success": True}
