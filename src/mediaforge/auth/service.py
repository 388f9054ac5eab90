"""User directory synchronised from Clerk webhooks."""

from typing import Any

from sqlalchemy.exc import IntegrityError

from mediaforge.auth.admin import is_admin_email
from mediaforge.auth.models import User, UserRole
from mediaforge.credits.models import CreditReason, LedgerMetadata
from mediaforge.credits.service import CreditService
from mediaforge.errors import InvalidInputError
from mediaforge.logging_config import get_logger
from mediaforge.notifications.service import NotificationService
from mediaforge.settings import settings
from mediaforge.storage.db import Database, db

logger = get_logger(__name__)


def _primary_email(data: dict[str, Any]) -> str | None:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for address in addresses:
        if primary_id and address.get("id") == primary_id:
            return address.get("email_address")
    return addresses[0].get("email_address") if addresses else None


class UserService:
    """Mirror Clerk users and onboard them."""

    def __init__(
        self,
        database: Database | None = None,
        credit_service: CreditService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.db = database or db
        self.credit_service = credit_service or CreditService(self.db)
        self.notification_service = notification_service or NotificationService(self.db)
        self.logger = get_logger(__name__)

    def get_user(self, user_id: str) -> User | None:
        with self.db.session() as session:
            return session.get(User, user_id)

    def handle_user_created(self, data: dict[str, Any]) -> bool:
        """Create the local user, grant the welcome bonus and greet them.

        Replayed events for an existing user are ignored.

        Args:
            data: ``data`` object of a Clerk ``user.created`` event

        Returns:
            True if the user was created

        Raises:
            InvalidInputError: If the event has no id or e-mail
        """
        user_id = data.get("id")
        email = _primary_email(data)
        if not user_id or not email:
            raise InvalidInputError("No email found")

        free_credits = settings.free_credits_for_new_users

        try:
            with self.db.session() as session:
                if session.get(User, user_id):
                    self.logger.info("user_already_exists", user_id=user_id)
                    return False

                user = User(
                    id=user_id,
                    email=email.lower(),
                    first_name=data.get("first_name"),
                    last_name=data.get("last_name"),
                    image_url=data.get("image_url"),
                    role=UserRole.ADMIN if is_admin_email(email) else UserRole.USER,
                )
                session.add(user)
                session.flush()

                if free_credits > 0:
                    self.credit_service.add_credits_in_session(
                        session,
                        user_id=user_id,
                        amount=free_credits,
                        reason=CreditReason.BONUS,
                        description=f"Welcome bonus - {free_credits} free credits for new user",
                        metadata=LedgerMetadata(source="user_registration"),
                    )
        except IntegrityError:
            self.logger.info("user_create_conflict", user_id=user_id)
            return False

        try:
            self.notification_service.create_welcome_notification(user_id, user.display_name)
        except Exception as e:
            # The user and the bonus are committed; a lost welcome message is not retried
            self.logger.exception("welcome_notification_failed", user_id=user_id, error=str(e))

        self.logger.info(
            "user_created",
            user_id=user_id,
            role=user.role.value,
            free_credits=free_credits,
        )
        return True


# Singleton instance
user_service = UserService()
