"""Authentication dependencies for FastAPI."""

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mediaforge.auth.admin import is_admin_user
from mediaforge.auth.clerk import verify_session_token
from mediaforge.auth.models import Identity
from mediaforge.errors import ForbiddenError, UnauthorizedError
from mediaforge.logging_config import get_logger
from mediaforge.storage.db import Database, get_database

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

# Clerk stores the session token in this cookie for same-origin requests
SESSION_COOKIE = "__session"


def get_current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    database: Database = Depends(get_database),
) -> Identity | None:
    """Get the authenticated caller.

    Args:
        request: FastAPI request
        credentials: Bearer token
        database: Database used to resolve the admin role

    Returns:
        Identity or None if not authenticated
    """
    token = credentials.credentials if credentials else request.cookies.get(SESSION_COOKIE)
    if not token:
        return None

    claims = verify_session_token(token)
    if not claims:
        return None

    user_id = claims["sub"]
    email = claims.get("email")
    request.state.user_id = user_id

    with database.session() as session:
        is_admin = is_admin_user(session, user_id, email)

    return Identity(user_id=user_id, email=email, is_admin=is_admin)


def require_auth(identity: Identity | None = Depends(get_current_identity)) -> Identity:
    """Require authentication - raises 401 if not authenticated."""
    if not identity:
        raise UnauthorizedError()
    return identity


def require_admin(identity: Identity = Depends(require_auth)) -> Identity:
    """Require admin privileges.

    Raises:
        ForbiddenError: 403 if not admin
    """
    if not identity.is_admin:
        logger.warning("admin_access_denied", user_id=identity.user_id)
        raise ForbiddenError("Admin access required")
    return identity
