"""Tests for Clerk user onboarding."""

import pytest

from mediaforge.auth.models import UserRole
from mediaforge.credits.models import CreditReason
from mediaforge.errors import InvalidInputError
from mediaforge.notifications.models import NotificationType
from mediaforge.settings import settings


def clerk_user(user_id="user_abc", email="ada@example.com", **extra):
    data = {
        "id": user_id,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "image_url": None,
        "primary_email_address_id": "idn_primary",
        "email_addresses": [
            {"id": "idn_other", "email_address": "other@example.com"},
            {"id": "idn_primary", "email_address": email},
        ],
    }
    data.update(extra)
    return data


class TestHandleUserCreated:
    def test_creates_user_with_welcome_bonus(self, user_service, credit_service, notification_service):
        assert user_service.handle_user_created(clerk_user()) is True

        user = user_service.get_user("user_abc")
        assert user.email == "ada@example.com"
        assert user.role == UserRole.USER

        assert credit_service.get_balance("user_abc")["balance"] == 50
        tx = credit_service.get_transaction_history("user_abc")[0]
        assert tx.reason == CreditReason.BONUS
        assert tx.metadata_json == {"source": "user_registration"}

        notifications = notification_service.get_user_notifications("user_abc")
        assert [n.type for n in notifications] == [NotificationType.WELCOME]

    def test_replayed_event_is_ignored(self, user_service, credit_service):
        user_service.handle_user_created(clerk_user())

        assert user_service.handle_user_created(clerk_user()) is False
        assert credit_service.get_balance("user_abc")["balance"] == 50

    def test_admin_email_gets_admin_role(self, user_service, monkeypatch):
        monkeypatch.setattr(settings, "admin_emails", "boss@mediaforge.test, ops@mediaforge.test")

        user_service.handle_user_created(clerk_user(email="Boss@MediaForge.test"))

        assert user_service.get_user("user_abc").role == UserRole.ADMIN

    def test_event_without_email(self, user_service):
        with pytest.raises(InvalidInputError):
            user_service.handle_user_created(clerk_user(email_addresses=[]))

    def test_failed_welcome_notification_keeps_user(
        self, user_service, credit_service, notification_service, monkeypatch
    ):
        def broken_notification(*args, **kwargs):
            raise RuntimeError("notifications table locked")

        monkeypatch.setattr(notification_service, "create_welcome_notification", broken_notification)

        assert user_service.handle_user_created(clerk_user()) is True

        assert user_service.get_user("user_abc") is not None
        assert credit_service.get_balance("user_abc")["balance"] == 50
        assert notification_service.get_user_notifications("user_abc") == []
