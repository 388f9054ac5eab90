"""HTTP-level tests for the /api routes."""

import stripe

from mediaforge.api.v1 import webhooks as webhooks_module
from mediaforge.auth.models import Identity
from mediaforge.credits.models import CreditReason
from mediaforge.settings import settings


class TestAuth:
    def test_anonymous_caller_is_rejected(self, client, auth):
        auth["identity"] = None

        response = client.get("/api/credits/balance")

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_admin_routes_require_admin(self, client):
        response = client.get("/api/admin/pricing")

        assert response.status_code == 403
        assert response.json() == {"error": "Admin access required"}


class TestCreditsApi:
    def test_balance(self, client, credit_service):
        credit_service.add_credits("user_1", 30, CreditReason.BONUS, "Bonus")

        response = client.get("/api/credits/balance")

        assert response.status_code == 200
        assert response.json() == {"balance": 30, "totalPurchased": 30, "totalUsed": 0}

    def test_packages(self, client):
        packages = client.get("/api/credits/packages").json()

        assert [p["id"] for p in packages] == ["starter", "pro", "enterprise"]
        assert packages[0]["isFree"] is True

    def test_add_free_pack(self, client):
        response = client.post("/api/credits/add-free-pack", json={"packageId": "starter"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "creditsAdded": 50, "newBalance": 50}

        again = client.post("/api/credits/add-free-pack", json={"packageId": "starter"})
        assert again.status_code == 400

    def test_add_paid_pack_is_rejected(self, client):
        response = client.post("/api/credits/add-free-pack", json={"packageId": "pro"})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_fields_are_invalid(self, client):
        response = client.post("/api/credits/add-free-pack", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request"}

    def test_deduct_insufficient(self, client, credit_service):
        credit_service.add_credits("user_1", 10, CreditReason.BONUS, "Bonus")

        response = client.post("/api/credits/deduct", json={"feature": "video-generation", "model": "veo2"})

        assert response.status_code == 402
        assert response.json() == {"error": "Insufficient credits", "required": 15, "available": 10}
        assert credit_service.get_balance("user_1")["balance"] == 10

    def test_deduct_and_history(self, client, credit_service):
        credit_service.add_credits("user_1", 10, CreditReason.BONUS, "Bonus")

        response = client.post("/api/credits/deduct", json={"feature": "video-generation", "model": "hailuo"})

        assert response.json() == {"success": True, "creditsDeducted": 8, "newBalance": 2}

        transactions = client.get("/api/credits/transactions").json()
        assert [tx["amount"] for tx in transactions] == [-8, 10]
        assert transactions[0]["type"] == "usage"

        usage = client.get("/api/credits/usage").json()
        assert usage[0]["model"] == "hailuo"
        assert usage[0]["creditsUsed"] == 8

    def test_report_failed_generation(self, client, credit_service):
        response = client.post(
            "/api/credits/usage",
            json={
                "feature": "video-generation",
                "model": "veo2",
                "status": "failed",
                "errorMessage": "provider timeout",
            },
        )

        assert response.json() == {"success": True}
        usage = client.get("/api/credits/usage").json()
        assert usage[0]["status"] == "failed"
        assert usage[0]["creditsUsed"] == 0
        assert usage[0]["errorMessage"] == "provider timeout"
        assert credit_service.get_transaction_history("user_1") == []

    def test_report_rejects_success_status(self, client):
        response = client.post(
            "/api/credits/usage",
            json={"feature": "video-generation", "model": "veo2", "status": "success"},
        )

        assert response.status_code == 400

    def test_check(self, client):
        response = client.post("/api/credits/check", json={"feature": "image-generation", "model": "default"})

        assert response.json() == {
            "hasCredits": False,
            "requiredCredits": 3,
            "currentBalance": 0,
            "isAdmin": False,
        }


class TestCheckoutApi:
    def test_stripe_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "stripe_secret_key", None)

        response = client.post("/api/stripe/create-checkout-session", json={"packageId": "pro"})

        assert response.status_code == 500
        assert response.json() == {"error": "Stripe not configured"}

    def test_create_session(self, client, stripe_configured, monkeypatch):
        monkeypatch.setattr(settings, "app_url", "https://app.mediaforge.test")

        response = client.post("/api/stripe/create-checkout-session", json={"packageId": "pro"})

        assert response.status_code == 200
        assert response.json() == {
            "sessionId": "cs_test_1",
            "url": "https://checkout.stripe.com/c/pay/cs_test_1",
        }
        assert stripe_configured[0]["success_url"] == (
            "https://app.mediaforge.test/dashboard/billing?success=true&session_id={CHECKOUT_SESSION_ID}"
        )

    def test_webhook_completes_purchase_once(self, client, credit_service, stripe_configured, monkeypatch):
        client.post("/api/stripe/create-checkout-session", json={"packageId": "pro"})
        event = {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_1", "payment_intent": "pi_1"}},
        }
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: event)

        first = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        second = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})

        assert first.json() == {"received": True}
        assert second.json() == {"received": True, "duplicate": True}
        assert credit_service.get_balance("user_1")["balance"] == 200

    def test_async_payment_credits_on_success(self, client, credit_service, stripe_configured, monkeypatch):
        client.post("/api/stripe/create-checkout-session", json={"packageId": "pro"})
        events = iter([
            {
                "id": "evt_1",
                "type": "checkout.session.completed",
                "data": {"object": {"id": "cs_test_1", "payment_status": "unpaid"}},
            },
            {
                "id": "evt_2",
                "type": "checkout.session.async_payment_succeeded",
                "data": {"object": {"id": "cs_test_1", "payment_status": "paid", "payment_intent": "pi_1"}},
            },
        ])
        monkeypatch.setattr(stripe.Webhook, "construct_event", lambda payload, sig, secret: next(events))

        pending = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert pending.json() == {"received": True}
        assert credit_service.get_balance("user_1")["balance"] == 0

        paid = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "sig"})
        assert paid.json() == {"received": True}
        assert credit_service.get_balance("user_1")["balance"] == 200

    def test_webhook_rejects_bad_signature(self, client, stripe_configured):
        response = client.post("/api/stripe/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=bad"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}


class TestClerkWebhook:
    def test_user_created_with_referral(self, client, referral_service, credit_service, monkeypatch):
        code = referral_service.get_or_create_referral_link("alice").code
        event = {
            "type": "user.created",
            "data": {
                "id": "user_new",
                "first_name": "Grace",
                "email_addresses": [{"id": "idn_1", "email_address": "grace@example.com"}],
                "primary_email_address_id": "idn_1",
                "unsafe_metadata": {"referralCode": code},
            },
        }
        monkeypatch.setattr(webhooks_module, "verify_webhook", lambda payload, headers: event)

        response = client.post("/api/webhooks/clerk", content=b"{}")

        assert response.json() == {"received": True}
        assert credit_service.get_balance("user_new")["balance"] == 50
        assert credit_service.get_balance("alice")["balance"] == 20

    def test_redelivered_user_created_still_attaches(
        self, client, user_service, referral_service, credit_service, monkeypatch
    ):
        code = referral_service.get_or_create_referral_link("alice").code
        data = {
            "id": "user_new",
            "email_addresses": [{"id": "idn_1", "email_address": "grace@example.com"}],
            "primary_email_address_id": "idn_1",
            "unsafe_metadata": {"referralCode": code},
        }
        # First delivery wrote the user, then failed before attaching
        user_service.handle_user_created(data)
        event = {"type": "user.created", "data": data}
        monkeypatch.setattr(webhooks_module, "verify_webhook", lambda payload, headers: event)

        client.post("/api/webhooks/clerk", content=b"{}")
        client.post("/api/webhooks/clerk", content=b"{}")

        assert credit_service.get_balance("user_new")["balance"] == 50
        assert credit_service.get_balance("alice")["balance"] == 20

    def test_not_configured(self, client, monkeypatch):
        monkeypatch.setattr(settings, "clerk_webhook_secret", None)

        response = client.post("/api/webhooks/clerk", content=b"{}")

        assert response.status_code == 500
        assert response.json() == {"error": "Clerk webhooks not configured"}


class TestNotificationsApi:
    def test_list(self, client, notification_service):
        notification_service.create_notification("user_1", "Hello", "World")
        notification_service.create_notification("user_2", "Not yours", "World")

        body = client.get("/api/notifications").json()

        assert body["unreadCount"] == 1
        assert [n["title"] for n in body["notifications"]] == ["Hello"]
        assert body["notifications"][0]["formattedDate"] == "Just now"

    def test_mark_as_read(self, client, notification_service):
        notification = notification_service.create_notification("user_1", "Hello", "World")

        response = client.patch("/api/notifications", json={"action": "markAsRead", "notificationId": notification.id})

        assert response.json() == {"success": True}
        assert notification_service.get_unread_count("user_1") == 0

    def test_notification_id_required(self, client):
        for action in ("markAsRead", "delete"):
            response = client.patch("/api/notifications", json={"action": action})
            assert response.status_code == 400

    def test_unknown_action(self, client):
        response = client.patch("/api/notifications", json={"action": "archive"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid action"}

    def test_delete_own_notification(self, client, notification_service):
        notification = notification_service.create_notification("user_1", "Hello", "World")

        response = client.patch("/api/notifications", json={"action": "delete", "notificationId": notification.id})

        assert response.json() == {"success": True}
        assert notification_service.get_user_notifications("user_1") == []

    def test_other_users_notification_is_untouched(self, client, notification_service):
        theirs = notification_service.create_notification("user_2", "Private", "World")

        response = client.patch("/api/notifications", json={"action": "delete", "notificationId": theirs.id})

        assert response.status_code == 200
        assert len(notification_service.get_user_notifications("user_2")) == 1


class TestReferralsApi:
    def test_stats_and_link(self, client):
        stats = client.get("/api/referrals").json()
        link = client.post("/api/referrals").json()["link"]

        assert stats == {
            "code": link["code"],
            "totalReferred": 0,
            "totalBonusCredits": 0,
            "clicks": 0,
            "signups": 0,
            "proPurchases": 0,
            "creditsEarned": 0,
            "events": [],
        }
        assert link["createdAt"]

    def test_attach_from_cookie(self, client, referral_service, credit_service):
        code = referral_service.get_or_create_referral_link("alice").code
        client.cookies.set("ref", code)

        first = client.post("/api/referrals/attach")
        second = client.post("/api/referrals/attach", json={"code": code})

        assert first.json() == {"ok": True, "attached": True}
        assert second.json() == {"ok": True, "attached": False}
        assert credit_service.get_balance("alice")["balance"] == 20

    def test_track_click_shows_in_events(self, client, referral_service):
        code = referral_service.get_or_create_referral_link("user_1").code

        assert client.post("/api/referrals/track-click", json={"code": code}).json() == {"success": True}

        stats = client.get("/api/referrals").json()
        assert stats["clicks"] == 1
        assert [(e["type"], e["code"], e["referredUserId"]) for e in stats["events"]] == [("click", code, None)]

    def test_validate_code(self, client, referral_service, user_service):
        user_service.handle_user_created({
            "id": "alice",
            "first_name": "Alice",
            "last_name": "Liddell",
            "email_addresses": [{"id": "idn_1", "email_address": "alice@example.com"}],
            "primary_email_address_id": "idn_1",
        })
        code = referral_service.get_or_create_referral_link("alice").code

        valid = client.post("/api/referrals/validate", json={"code": code.lower()})
        invalid = client.post("/api/referrals/validate", json={"code": "NOPE2345"})

        assert valid.json() == {"valid": True, "referrerName": "Alice"}
        assert invalid.json() == {"valid": False, "referrerName": None}

    def test_track_click_unknown_code(self, client):
        response = client.post("/api/referrals/track-click", json={"code": "NOPE2345"})

        assert response.status_code == 404
        assert response.json() == {"error": "Invalid referral code"}

    def test_ref_query_sets_cookie(self, client):
        response = client.get("/health", params={"ref": "ABCD2345"})

        cookie = response.headers["set-cookie"]
        assert cookie.startswith("ref=ABCD2345")
        assert "Max-Age=2592000" in cookie
        assert "Path=/" in cookie
        assert "samesite=lax" in cookie.lower()
        assert "httponly" not in cookie.lower()


class TestAdminApi:
    def test_update_pricing_and_grant(self, client, auth, credit_service):
        auth["identity"] = Identity(user_id="admin_1", email="admin@mediaforge.test", is_admin=True)

        pricing = client.patch(
            "/api/admin/pricing",
            json={"feature": "video-generation", "model": "veo2", "creditsPerUse": 20},
        )
        grant = client.post("/api/admin/credits/grant", json={"userId": "user_9", "amount": 40})

        assert pricing.json()["creditsPerUse"] == 20
        assert grant.json() == {"success": True, "creditsAdded": 40, "newBalance": 40}

        tx = credit_service.get_transaction_history("user_9")[0]
        assert tx.metadata_json == {"source": "admin_grant", "granted_by": "admin_1"}

    def test_update_unknown_pricing(self, client, auth):
        auth["identity"] = Identity(user_id="admin_1", is_admin=True)

        response = client.patch("/api/admin/pricing", json={"feature": "video-generation", "model": "sora"})

        assert response.status_code == 404


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]
