"""Tests for Stripe checkout and purchase settlement."""

import pytest
import stripe

from mediaforge.auth.models import Identity
from mediaforge.errors import InvalidInputError, NotConfiguredError
from mediaforge.payments.models import Purchase, PurchaseStatus
from mediaforge.payments.stripe_service import verify_webhook_signature
from mediaforge.settings import settings

BUYER = Identity(user_id="buyer", email="buyer@example.com")


def _start_checkout(checkout_service, package_id="pro"):
    return checkout_service.create_checkout_session(
        BUYER,
        package_id,
        success_url="https://app.test/dashboard/billing?success=true",
        cancel_url="https://app.test/dashboard/billing?canceled=true",
    )


def _purchase(database, transaction_id):
    with database.session() as session:
        return session.query(Purchase).filter_by(transaction_id=transaction_id).one()


class TestCreateCheckoutSession:
    def test_pro_checkout_records_pending_purchase(self, checkout_service, database, stripe_configured):
        result = _start_checkout(checkout_service)

        assert result == {
            "session_id": "cs_test_1",
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        }

        purchase = _purchase(database, "cs_test_1")
        assert purchase.status == PurchaseStatus.PENDING
        assert purchase.user_id == "buyer"
        assert purchase.credits == 200
        assert purchase.amount == 2999

        sent = stripe_configured[0]
        assert sent["mode"] == "payment"
        assert sent["customer_email"] == "buyer@example.com"
        assert sent["line_items"][0]["price_data"]["unit_amount"] == 2999
        assert sent["metadata"] == {
            "user_id": "buyer",
            "package_id": "pro",
            "credits": "200",
            "package_name": "Pro Pack",
        }

    def test_not_configured(self, checkout_service, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)

        with pytest.raises(NotConfiguredError, match="Stripe not configured"):
            _start_checkout(checkout_service)

    def test_unknown_package(self, checkout_service, stripe_configured):
        with pytest.raises(InvalidInputError, match="Invalid package"):
            _start_checkout(checkout_service, "mystery")
        assert stripe_configured == []

    def test_free_package_needs_no_checkout(self, checkout_service, stripe_configured):
        with pytest.raises(InvalidInputError):
            _start_checkout(checkout_service, "starter")


class TestCompletePurchase:
    def test_completion_credits_once(self, checkout_service, credit_service, database, stripe_configured):
        _start_checkout(checkout_service)
        checkout = {"id": "cs_test_1", "payment_intent": "pi_123"}

        assert checkout_service.handle_checkout_completed(checkout) is True
        assert checkout_service.handle_checkout_completed(checkout) is False

        assert credit_service.get_balance("buyer") == {
            "balance": 200,
            "total_purchased": 200,
            "total_used": 0,
        }
        purchase = _purchase(database, "cs_test_1")
        assert purchase.status == PurchaseStatus.COMPLETED
        assert purchase.payment_intent == "pi_123"

        tx = credit_service.get_transaction_history("buyer")[0]
        assert tx.metadata_json["session_id"] == "cs_test_1"
        assert tx.metadata_json["package_id"] == "pro"

    def test_completion_notifies_buyer(self, checkout_service, notification_service, stripe_configured):
        _start_checkout(checkout_service)
        checkout_service.handle_checkout_completed({"id": "cs_test_1"})

        notifications = notification_service.get_user_notifications("buyer")
        assert len(notifications) == 1
        assert notifications[0].metadata_json == {"credits": 200, "packageId": "pro"}

    def test_unknown_session_is_ignored(self, checkout_service, credit_service):
        assert checkout_service.handle_checkout_completed({"id": "cs_unknown"}) is False
        assert credit_service.get_balance("buyer")["balance"] == 0

    def test_failed_purchase_cannot_complete(self, checkout_service, credit_service, database, stripe_configured):
        _start_checkout(checkout_service)

        assert checkout_service.fail_purchase("cs_test_1") is True
        assert checkout_service.complete_purchase("cs_test_1") is False

        assert _purchase(database, "cs_test_1").status == PurchaseStatus.FAILED
        assert credit_service.get_balance("buyer")["balance"] == 0

    def test_pro_purchase_rewards_referrer(self, checkout_service, referral_service, credit_service, stripe_configured):
        code = referral_service.get_or_create_referral_link("alice").code
        referral_service.attach_referral_on_signup("buyer", code)

        _start_checkout(checkout_service)
        checkout_service.handle_checkout_completed({"id": "cs_test_1"})

        assert credit_service.get_balance("alice")["balance"] == 20 + 50

    def test_enterprise_purchase_does_not_reward_referrer(
        self, checkout_service, referral_service, credit_service, stripe_configured
    ):
        code = referral_service.get_or_create_referral_link("alice").code
        referral_service.attach_referral_on_signup("buyer", code)

        _start_checkout(checkout_service, "enterprise")
        checkout_service.handle_checkout_completed({"id": "cs_test_1"})

        assert credit_service.get_balance("buyer")["balance"] == 1000
        assert credit_service.get_balance("alice")["balance"] == 20


class TestVerifyWebhookSignature:
    def test_missing_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_webhook_secret", None)

        with pytest.raises(NotConfiguredError):
            verify_webhook_signature(b"{}", "t=1,v1=abc")

    def test_bad_signature(self, stripe_configured):
        with pytest.raises(InvalidInputError, match="Invalid signature"):
            verify_webhook_signature(b'{"id": "evt_1"}', "t=1,v1=not-a-signature")

    def test_valid_event_is_returned(self, stripe_configured, monkeypatch):
        event = {"id": "evt_1", "type": "checkout.session.completed"}
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)

        assert verify_webhook_signature(b"{}", "sig") is event


class TestSettlementIsolation:
    def test_failed_notification_keeps_credits_and_reward(
        self, checkout_service, referral_service, notification_service, credit_service, stripe_configured, monkeypatch
    ):
        code = referral_service.get_or_create_referral_link("alice").code
        referral_service.attach_referral_on_signup("buyer", code)
        _start_checkout(checkout_service)

        def broken_notification(*args, **kwargs):
            raise RuntimeError("notifications table locked")

        monkeypatch.setattr(notification_service, "create_credit_notification", broken_notification)

        assert checkout_service.handle_checkout_completed({"id": "cs_test_1"}) is True
        assert checkout_service.handle_checkout_completed({"id": "cs_test_1"}) is False

        assert credit_service.get_balance("buyer")["balance"] == 200
        assert credit_service.get_balance("alice")["balance"] == 20 + 50
        assert referral_service.get_stats("alice")["pro_purchases"] == 1

    def test_failed_reward_rolls_back_purchase(
        self, checkout_service, referral_service, credit_service, database, stripe_configured, monkeypatch
    ):
        code = referral_service.get_or_create_referral_link("alice").code
        referral_service.attach_referral_on_signup("buyer", code)
        _start_checkout(checkout_service)

        def broken_reward(*args, **kwargs):
            raise RuntimeError("referral tables unavailable")

        with monkeypatch.context() as patch:
            patch.setattr(referral_service, "reward_on_pro_purchase_in_session", broken_reward)
            with pytest.raises(RuntimeError):
                checkout_service.handle_checkout_completed({"id": "cs_test_1"})

        assert _purchase(database, "cs_test_1").status == PurchaseStatus.PENDING
        assert credit_service.get_balance("buyer")["balance"] == 0

        # Stripe redelivers the event; settlement and reward now go through together
        assert checkout_service.handle_checkout_completed({"id": "cs_test_1"}) is True
        assert credit_service.get_balance("buyer")["balance"] == 200
        assert credit_service.get_balance("alice")["balance"] == 20 + 50
