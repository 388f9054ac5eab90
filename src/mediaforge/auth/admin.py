"""Admin role resolution."""

from sqlalchemy.orm import Session

from mediaforge.auth.models import User, UserRole
from mediaforge.settings import settings


def is_admin_email(email: str | None) -> bool:
    """Check an e-mail against the ADMIN_EMAILS allowlist."""
    if not email:
        return False
    return email.strip().lower() in settings.admin_email_list


def is_admin_user(session: Session, user_id: str, email: str | None = None) -> bool:
    """Check whether a user is an admin.

    A user is an admin when their mirrored role is ``admin`` or their e-mail
    (from the token or the mirrored row) is on the allowlist.

    Args:
        session: Open database session
        user_id: Clerk user ID
        email: E-mail from the session token, if any

    Returns:
        True if admin
    """
    if is_admin_email(email):
        return True

    user = session.get(User, user_id)
    if not user:
        return False

    return user.role == UserRole.ADMIN or is_admin_email(user.email)
