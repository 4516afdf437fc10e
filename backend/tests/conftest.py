"""Shared pytest fixtures for test suite"""
import json
import os
import secrets
import sys
from pathlib import Path
from typing import Generator
from unittest.mock import Mock, patch

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

# Settings are read once at import time
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FRONTEND_URL"] = "https://coursehub.test"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_123"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test123"
os.environ["STRIPE_PRICE_PERSONAL_MONTHLY"] = "price_personal_monthly"
os.environ["STRIPE_PRICE_PERSONAL_YEARLY"] = "price_personal_yearly"
os.environ["STRIPE_PRICE_TEAM_MONTHLY"] = "price_team_monthly"
os.environ["STRIPE_PRICE_TEAM_YEARLY"] = "price_team_yearly"
os.environ["STRIPE_PRICE_ENTERPRISE_MONTHLY"] = "price_enterprise_monthly"
os.environ["STRIPE_PRICE_ENTERPRISE_YEARLY"] = "price_enterprise_yearly"

from app.main import app
from app.db.session import get_db
from app.db import redis as redis_module
from app.models import Base
from app.models.course import Course
from app.models.subscription_plan import SubscriptionPlan
from app.models.user import User
from app.services.webhook_service import process_stripe_webhook


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def mock_redis():
    """Replace the Redis client with fakeredis (Lua support needed for rate limiting)"""
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)
    with patch.object(redis_module, "_client", fake_redis):
        yield fake_redis


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database and mocked Redis"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Disable startup side effects in tests
        with patch("app.main.initialize_otel", return_value=False):
            with patch("app.main.instrument_sqlalchemy"):
                with patch("app.main.init_db"):
                    with TestClient(app) as test_client:
                        yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def test_user(db_session: Session) -> User:
    user = User(email="student@coursehub.test", first_name="Sam", last_name="Student")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def authenticated_client(client: TestClient, test_user: User) -> TestClient:
    """Client carrying a session cookie for test_user"""
    session_id = secrets.token_urlsafe(16)
    redis_module.set_session(session_id, test_user.id)
    client.cookies.set("session_id", session_id)
    return client


@pytest.fixture(scope="function")
def test_course(db_session: Session) -> Course:
    course = Course(
        title="Python for Data Pipelines",
        slug="python-data-pipelines",
        price=4999,
        stripe_price_id="price_course_123"
    )
    db_session.add(course)
    db_session.commit()
    db_session.refresh(course)
    return course


def _create_plan(db_session: Session, **fields) -> SubscriptionPlan:
    plan = SubscriptionPlan(**fields)
    db_session.add(plan)
    db_session.commit()
    db_session.refresh(plan)
    return plan


@pytest.fixture(scope="function")
def basic_plan(db_session: Session) -> SubscriptionPlan:
    return _create_plan(
        db_session,
        name="Basic",
        slug="basic",
        price_monthly=999,
        price_yearly=9990,
        stripe_price_id_monthly="price_basic_monthly",
        stripe_price_id_yearly="price_basic_yearly",
    )


@pytest.fixture(scope="function")
def pro_plan(db_session: Session) -> SubscriptionPlan:
    return _create_plan(
        db_session,
        name="Pro",
        slug="pro",
        price_monthly=2999,
        price_yearly=29990,
        stripe_price_id_monthly="price_pro_monthly",
        stripe_price_id_yearly="price_pro_yearly",
    )


@pytest.fixture(scope="function")
def trial_plan(db_session: Session) -> SubscriptionPlan:
    return _create_plan(
        db_session,
        name="Starter",
        slug="starter",
        price_monthly=499,
        price_yearly=4990,
        trial_days=14,
        stripe_price_id_monthly="price_starter_monthly",
        stripe_price_id_yearly="price_starter_yearly",
    )


@pytest.fixture(scope="function", autouse=True)
def auto_mock_stripe():
    """Automatically mock Stripe for all tests to prevent calling the real API"""
    with patch("app.services.stripe_service.stripe") as mock_stripe_module:
        mock_customer = Mock(id="cus_test123", email="student@coursehub.test")
        mock_stripe_module.Customer.create = Mock(return_value=mock_customer)

        mock_stripe_module.checkout.Session.create = Mock(return_value=Mock(
            id="cs_test123",
            url="https://checkout.stripe.com/test"
        ))

        # Plain dicts: Mock attributes would make every missing field look present
        mock_stripe_module.Subscription.retrieve = Mock(return_value={
            "id": "sub_test123",
            "status": "active",
            "current_period_start": 1767225600,
            "current_period_end": 1769904000,
            "cancel_at_period_end": False,
            "items": {"data": [{"id": "si_test123", "price": {"id": "price_test123"}}]},
        })
        mock_stripe_module.Subscription.modify = Mock(return_value={"id": "sub_test123"})
        mock_stripe_module.Subscription.cancel = Mock(return_value={"id": "sub_test123", "status": "canceled"})

        mock_stripe_module.Webhook.construct_event = Mock(return_value={
            "id": "evt_test123",
            "type": "customer.subscription.created",
            "data": {"object": {}}
        })

        yield mock_stripe_module


def make_event(event_type: str, data_object: dict, event_id: str = None) -> dict:
    return {
        "id": event_id or f"evt_{secrets.token_hex(8)}",
        "type": event_type,
        "data": {"object": data_object},
    }


@pytest.fixture(scope="function")
def deliver_event(db_session: Session, auto_mock_stripe):
    """Run an event through the reconciler as if Stripe had delivered it.

    Returns a callable (event_type, data_object, event_id=None) -> WebhookOutcome.
    """
    def _deliver(event_type: str, data_object: dict, event_id: str = None):
        event = make_event(event_type, data_object, event_id)
        auto_mock_stripe.Webhook.construct_event.return_value = event
        return process_stripe_webhook(json.dumps(event).encode(), "t=1,v1=signature", db_session)

    return _deliver
