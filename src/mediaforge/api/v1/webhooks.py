"""Webhook endpoints for external services."""

from fastapi import APIRouter, Depends, Request

from mediaforge.api.deps import get_checkout_service, get_referral_service, get_user_service
from mediaforge.auth.clerk import verify_webhook
from mediaforge.auth.service import UserService
from mediaforge.logging_config import get_logger
from mediaforge.payments.stripe_service import CheckoutService, verify_webhook_signature
from mediaforge.referral.service import ReferralService

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])

PAID_CHECKOUT_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
}

FAILED_CHECKOUT_EVENTS = {
    "checkout.session.expired",
    "checkout.session.async_payment_failed",
}


@router.post("/stripe/webhook")
async def stripe_webhook(
    request: Request,
    checkout: CheckoutService = Depends(get_checkout_service),
):
    """Handle Stripe webhook events.

    Verifies the signature, then settles the purchase. A replayed
    completion is acknowledged without crediting twice. A session that
    completes with a delayed payment method stays pending until Stripe
    reports the async payment result.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    event = verify_webhook_signature(payload, sig_header)

    event_type = event["type"]
    session_data = event["data"]["object"]

    if event_type in PAID_CHECKOUT_EVENTS:
        if session_data.get("payment_status") == "unpaid":
            logger.info("stripe_checkout_awaiting_payment", session_id=session_data["id"])
            return {"received": True}

        if not checkout.handle_checkout_completed(session_data):
            logger.info("stripe_webhook_duplicate", event_id=event.get("id"))
            return {"received": True, "duplicate": True}

        logger.info("stripe_checkout_completed", session_id=session_data["id"], event_type=event_type)

    elif event_type in FAILED_CHECKOUT_EVENTS:
        checkout.fail_purchase(session_data["id"])
        logger.info("stripe_checkout_failed", session_id=session_data["id"], event_type=event_type)

    else:
        logger.debug("stripe_webhook_ignored", event_type=event_type)

    return {"received": True}


@router.post("/webhooks/clerk")
async def clerk_webhook(
    request: Request,
    users: UserService = Depends(get_user_service),
    referrals: ReferralService = Depends(get_referral_service),
):
    """Handle Clerk user lifecycle events (svix-signed).

    A redelivered ``user.created`` still attaches the referral code, so a
    delivery that failed after the user row was written is completed on
    retry. Attachment is first-wins and never pays twice.
    """
    payload = await request.body()
    event = verify_webhook(payload, dict(request.headers))

    event_type = event.get("type")
    data = event.get("data") or {}

    if event_type == "user.created":
        users.handle_user_created(data)

        # Sign-up flows may forward the referral code as unsafe metadata
        code = (data.get("unsafe_metadata") or {}).get("referralCode")
        if code:
            referrals.attach_referral_on_signup(data["id"], code)
    else:
        logger.debug("clerk_webhook_ignored", event_type=event_type)

    return {"received": True}
