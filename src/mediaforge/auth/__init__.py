"""Authentication for MediaForge - Clerk session tokens and user mirror."""

from mediaforge.auth.middleware import get_current_identity, require_admin, require_auth
from mediaforge.auth.models import Identity, User, UserRole

__all__ = [
    "Identity",
    "User",
    "UserRole",
    "get_current_identity",
    "require_admin",
    "require_auth",
]
