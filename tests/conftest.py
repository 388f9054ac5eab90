"""Shared fixtures: an isolated SQLite database per test and wired services."""

from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient

from mediaforge.api.main import create_app
from mediaforge.auth.middleware import get_current_identity
from mediaforge.auth.models import Identity, User, UserRole
from mediaforge.auth.service import UserService
from mediaforge.credits.service import CreditService
from mediaforge.notifications.service import NotificationService
from mediaforge.payments.stripe_service import CheckoutService
from mediaforge.referral.service import ReferralService
from mediaforge.settings import settings
from mediaforge.storage.db import Database, get_database


@pytest.fixture
def database(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'mediaforge-test.db'}", echo=False)
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def credit_service(database):
    service = CreditService(database)
    service.initialize_default_pricing()
    service.initialize_default_packages()
    return service


@pytest.fixture
def notification_service(database):
    return NotificationService(database)


@pytest.fixture
def referral_service(database, credit_service):
    return ReferralService(database, credit_service)


@pytest.fixture
def checkout_service(database, credit_service, referral_service, notification_service):
    return CheckoutService(database, credit_service, referral_service, notification_service)


@pytest.fixture
def user_service(database, credit_service, notification_service):
    return UserService(database, credit_service, notification_service)


@pytest.fixture
def make_admin(database):
    """Mirror a user with the admin role."""

    def _make_admin(user_id: str, email: str = "admin@mediaforge.test") -> None:
        with database.session() as session:
            session.add(User(id=user_id, email=email, role=UserRole.ADMIN))

    return _make_admin


@pytest.fixture
def auth():
    """Mutable caller identity used by the ``client`` fixture (None = anonymous)."""
    return {"identity": Identity(user_id="user_1", email="user1@example.com")}


@pytest.fixture
def client(database, credit_service, auth):
    app = create_app()
    app.dependency_overrides[get_database] = lambda: database
    app.dependency_overrides[get_current_identity] = lambda: auth["identity"]

    # No context manager: the lifespan would touch the default database
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def stripe_configured(monkeypatch):
    """Stripe keys set and ``checkout.Session.create`` replaced by a recorder."""
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_mediaforge")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_mediaforge")

    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        session_id = f"cs_test_{len(calls)}"
        return SimpleNamespace(id=session_id, url=f"https://checkout.stripe.com/c/pay/{session_id}")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    return calls
