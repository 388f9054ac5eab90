"""Clerk session token and webhook verification."""

from typing import Any

from jose import JWTError, jwt
from svix.webhooks import Webhook, WebhookVerificationError

from mediaforge.errors import InvalidInputError, NotConfiguredError
from mediaforge.logging_config import get_logger
from mediaforge.settings import settings

logger = get_logger(__name__)

# Clerk signs session tokens with the instance RSA key
CLERK_JWT_ALGORITHMS = ["RS256"]


def verify_session_token(token: str) -> dict[str, Any] | None:
    """Verify a Clerk session JWT.

    Uses networkless verification with the instance PEM public key.

    Args:
        token: Raw session token (Bearer header or ``__session`` cookie)

    Returns:
        Token claims, or None if the token is invalid or Clerk is not configured
    """
    if not settings.clerk_jwt_key:
        logger.warning("clerk_not_configured")
        return None

    try:
        claims = jwt.decode(
            token,
            settings.clerk_jwt_key,
            algorithms=CLERK_JWT_ALGORITHMS,
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.debug("clerk_token_invalid", error=str(e))
        return None

    # Reject tokens minted for another frontend origin
    parties = settings.authorized_parties
    azp = claims.get("azp")
    if parties and azp and azp not in parties:
        logger.warning("clerk_token_unauthorized_party", azp=azp)
        return None

    if not claims.get("sub"):
        return None

    return claims


def verify_webhook(payload: bytes, headers: dict[str, str]) -> dict[str, Any]:
    """Verify and parse a Clerk (svix-signed) webhook.

    Args:
        payload: Raw request body
        headers: Request headers containing svix-id, svix-timestamp, svix-signature

    Returns:
        Parsed event

    Raises:
        NotConfiguredError: If the webhook secret is missing
        InvalidInputError: If headers are missing or the signature is invalid
    """
    if not settings.clerk_webhook_secret:
        raise NotConfiguredError("Clerk webhooks not configured")

    svix_headers = {
        name: headers.get(name, "")
        for name in ("svix-id", "svix-timestamp", "svix-signature")
    }
    if not all(svix_headers.values()):
        raise InvalidInputError("Missing svix headers")

    try:
        return Webhook(settings.clerk_webhook_secret).verify(payload, svix_headers)
    except WebhookVerificationError:
        raise InvalidInputError("Invalid webhook signature")
