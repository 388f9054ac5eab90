"""Stripe payment integration for MediaForge."""

from typing import Any

import stripe
from sqlalchemy import update

from mediaforge.auth.models import Identity
from mediaforge.credits.models import CreditPackage, CreditReason, LedgerMetadata
from mediaforge.credits.pricing import PRO_PACKAGE_ID
from mediaforge.credits.service import CreditService
from mediaforge.errors import InvalidInputError, NotConfiguredError
from mediaforge.logging_config import get_logger
from mediaforge.notifications.service import NotificationService
from mediaforge.payments.models import Purchase, PurchaseStatus
from mediaforge.referral.service import ReferralService
from mediaforge.settings import settings
from mediaforge.storage.db import Database, db
from mediaforge.storage.models import utcnow

logger = get_logger(__name__)


class CheckoutService:
    """Creates checkout sessions and settles them exactly once."""

    def __init__(
        self,
        database: Database | None = None,
        credit_service: CreditService | None = None,
        referral_service: ReferralService | None = None,
        notification_service: NotificationService | None = None,
    ):
        self.db = database or db
        self.credit_service = credit_service or CreditService(self.db)
        self.referral_service = referral_service or ReferralService(self.db, self.credit_service)
        self.notification_service = notification_service or NotificationService(self.db)
        self.logger = get_logger(__name__)

    def create_checkout_session(
        self,
        identity: Identity,
        package_id: str,
        success_url: str,
        cancel_url: str,
    ) -> dict[str, str]:
        """Create a Stripe Checkout session and a pending purchase.

        Args:
            identity: Buyer
            package_id: Credit package ID
            success_url: URL to redirect after successful payment
            cancel_url: URL to redirect after cancelled payment

        Returns:
            Dict with session_id and url

        Raises:
            NotConfiguredError: If Stripe is not configured
            InvalidInputError: If package_id is unknown, inactive or free
        """
        if not settings.stripe_secret_key:
            raise NotConfiguredError("Stripe not configured")

        with self.db.session() as session:
            package = session.get(CreditPackage, package_id)

        if not package or not package.is_active:
            raise InvalidInputError("Invalid package")

        if package.is_free:
            raise InvalidInputError("Free packages do not require checkout")

        checkout = stripe.checkout.Session.create(
            api_key=settings.stripe_secret_key,
            payment_method_types=["card"],
            line_items=[
                {
                    "price_data": {
                        "currency": package.currency.lower(),
                        "product_data": {
                            "name": package.name,
                            "description": package.description or f"{package.credits} MediaForge credits",
                        },
                        "unit_amount": package.price,
                    },
                    "quantity": 1,
                }
            ],
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            customer_email=identity.email,
            metadata={
                "user_id": identity.user_id,
                "package_id": package.id,
                "credits": str(package.credits),
                "package_name": package.name,
            },
        )

        with self.db.session() as session:
            session.add(
                Purchase(
                    user_id=identity.user_id,
                    package_id=package.id,
                    amount=package.price,
                    currency=package.currency,
                    credits=package.credits,
                    status=PurchaseStatus.PENDING,
                    transaction_id=checkout.id,
                    metadata_json=LedgerMetadata(
                        package_id=package.id,
                        package_name=package.name,
                    ).to_json(),
                )
            )

        self.logger.info(
            "checkout_session_created",
            user_id=identity.user_id,
            package_id=package.id,
            session_id=checkout.id,
        )

        return {"session_id": checkout.id, "url": checkout.url}

    def complete_purchase(self, transaction_id: str, payment_intent: str | None = None) -> bool:
        """Mark a pending purchase completed and credit the buyer, atomically.

        A Pro purchase also pays the referrer's reward in the same
        transaction.

        Args:
            transaction_id: Checkout Session id
            payment_intent: Stripe PaymentIntent id, if known

        Returns:
            False if the purchase was unknown or already settled
        """
        return self._complete(transaction_id, payment_intent) is not None

    def _complete(self, transaction_id: str, payment_intent: str | None) -> Purchase | None:
        with self.db.session() as session:
            result = session.execute(
                update(Purchase)
                .where(
                    Purchase.transaction_id == transaction_id,
                    Purchase.status == PurchaseStatus.PENDING,
                )
                .values(
                    status=PurchaseStatus.COMPLETED,
                    payment_intent=payment_intent,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                self.logger.info("purchase_already_settled_or_unknown", transaction_id=transaction_id)
                return None

            purchase = session.query(Purchase).filter(
                Purchase.transaction_id == transaction_id
            ).one()
            package_name = (purchase.metadata_json or {}).get("package_name")

            self.credit_service.add_credits_in_session(
                session,
                user_id=purchase.user_id,
                amount=purchase.credits,
                reason=CreditReason.PURCHASE,
                description=f"Credit purchase - {purchase.credits} credits",
                metadata=LedgerMetadata(
                    session_id=transaction_id,
                    package_id=purchase.package_id,
                    package_name=package_name,
                    payment_intent=payment_intent,
                ),
            )

            if purchase.package_id == PRO_PACKAGE_ID:
                self.referral_service.reward_on_pro_purchase_in_session(session, purchase.user_id)

        self.logger.info(
            "purchase_completed",
            user_id=purchase.user_id,
            package_id=purchase.package_id,
            credits=purchase.credits,
            transaction_id=transaction_id,
        )
        return purchase

    def fail_purchase(self, transaction_id: str) -> bool:
        """Mark a pending purchase failed.

        Returns:
            True if a pending purchase was updated
        """
        with self.db.session() as session:
            result = session.execute(
                update(Purchase)
                .where(
                    Purchase.transaction_id == transaction_id,
                    Purchase.status == PurchaseStatus.PENDING,
                )
                .values(status=PurchaseStatus.FAILED, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        if result.rowcount:
            self.logger.info("purchase_failed", transaction_id=transaction_id)
        return bool(result.rowcount)

    def handle_checkout_completed(self, checkout: Any) -> bool:
        """Handle a paid checkout - add credits, then notify the buyer.

        Credits and the referral reward are committed before the
        notification is written; a failed notification is logged and does
        not undo the settlement.

        Args:
            checkout: Paid Stripe Checkout Session (object or dict)

        Returns:
            False if the session had already been processed
        """
        payment_intent = checkout.get("payment_intent")
        purchase = self._complete(
            checkout["id"],
            str(payment_intent) if payment_intent else None,
        )
        if not purchase:
            return False

        try:
            self.notification_service.create_credit_notification(
                purchase.user_id,
                "Credits added 💰",
                f"Your purchase of {purchase.credits} credits is complete.",
                {"credits": purchase.credits, "packageId": purchase.package_id},
            )
        except Exception as e:
            self.logger.exception(
                "purchase_notification_failed",
                user_id=purchase.user_id,
                transaction_id=purchase.transaction_id,
                error=str(e),
            )

        return True


def verify_webhook_signature(payload: bytes, sig_header: str) -> stripe.Event:
    """Verify and parse a Stripe webhook event.

    Args:
        payload: Raw request body
        sig_header: Stripe-Signature header value

    Returns:
        Verified Stripe event

    Raises:
        NotConfiguredError: If the webhook secret is missing
        InvalidInputError: If signature is invalid
    """
    if not settings.stripe_webhook_secret:
        raise NotConfiguredError("Stripe not configured")

    try:
        return stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
        )
    except (ValueError, stripe.SignatureVerificationError):
        raise InvalidInputError("Invalid signature")
