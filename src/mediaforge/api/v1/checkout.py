"""Stripe Checkout endpoints."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from mediaforge.api.deps import get_checkout_service
from mediaforge.api.rate_limit import CHECKOUT_LIMIT, limiter
from mediaforge.auth.middleware import require_auth
from mediaforge.auth.models import Identity
from mediaforge.logging_config import get_logger
from mediaforge.payments.stripe_service import CheckoutService
from mediaforge.settings import settings

logger = get_logger(__name__)

router = APIRouter(prefix="/stripe", tags=["stripe"])


class CheckoutRequest(BaseModel):
    """Request to start a checkout for a paid package."""
    model_config = ConfigDict(populate_by_name=True)

    package_id: str = Field(alias="packageId", min_length=1)


def _redirect_base(request: Request) -> str:
    return (settings.app_url or str(request.base_url)).rstrip("/")


@router.post("/create-checkout-session")
@limiter.limit(CHECKOUT_LIMIT)
def create_checkout_session(
    request: Request,
    body: CheckoutRequest,
    identity: Identity = Depends(require_auth),
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Create a Stripe Checkout session for a credit package.

    Stripe substitutes ``{CHECKOUT_SESSION_ID}`` in the success URL.
    """
    base = _redirect_base(request)
    result = checkout.create_checkout_session(
        identity,
        body.package_id,
        success_url=f"{base}/dashboard/billing?success=true&session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base}/dashboard/billing?canceled=true",
    )

    return {"sessionId": result["session_id"], "url": result["url"]}
