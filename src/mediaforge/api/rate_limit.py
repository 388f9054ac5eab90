"""Rate limiting configuration for the MediaForge API."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from mediaforge.logging_config import get_logger
from mediaforge.settings import settings

logger = get_logger(__name__)

# Per-route limits
CHECKOUT_LIMIT = "10/minute"
REFERRAL_ATTACH_LIMIT = "10/minute"
REFERRAL_VALIDATE_LIMIT = "30/minute"
REFERRAL_CLICK_LIMIT = "60/minute"


def rate_limit_key(request: Request) -> str:
    """Bucket signed-in callers by Clerk user, everyone else by client address.

    ``get_current_identity`` stores the verified user id on ``request.state``;
    route limits are checked after dependencies have run.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate_limit_exceeded",
        key=rate_limit_key(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"error": "Too many requests. Please try again later."},
    )


# Shared limiter - only enforced in production
limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.rate_limit_default],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.env == "production",
)
