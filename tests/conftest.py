import os
from typing import Generator

# Override settings for tests before importing market modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["PAYMENT_PROVIDER"] = "mock"
os.environ["PAYMENT_WEBHOOK_SECRET"] = ""
os.environ["STRIPE_SECRET_KEY"] = "sk_test_mock"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_mock"
os.environ["SMTP_HOST"] = ""
os.environ["SMTP_FROM_EMAIL"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from market.bus import EventBus, EventDispatcher
from market.config import SagaConfig
from market.consumers import default_subscriptions
from market.dependencies import get_saga_config
from market.main import app
from market.models.database import Base, get_db
from market.services.license_service import FulfillmentGateway
from market.services.payment_gateway import MockPaymentGateway, PaymentSession, get_payment_gateway
from market.store import EntityStore

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


class RecordingPaymentGateway(MockPaymentGateway):
    """Mock provider that remembers every session it opened."""

    def __init__(self):
        self.calls = []

    def create_session(self, order_id, payment_method, total_amount, currency) -> PaymentSession:
        session = super().create_session(order_id, payment_method, total_amount, currency)
        self.calls.append((order_id, payment_method, total_amount, currency, session))
        return session


class CountingLicenseGateway(FulfillmentGateway):
    """Issues LICENSE-0001, LICENSE-0002, ... and records each call."""

    def __init__(self):
        self.calls = []

    def issue_asset(self, product_ref: str, customer_ref: str) -> str:
        self.calls.append((product_ref, customer_ref))
        return f"LICENSE-{len(self.calls):04d}"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory():
    return TestSessionLocal


@pytest.fixture
def saga_config() -> SagaConfig:
    return SagaConfig(retry_delay_seconds=0, visibility_timeout_seconds=30)


@pytest.fixture
def store(db: Session) -> EntityStore:
    return EntityStore(db)


@pytest.fixture
def bus(db: Session, saga_config: SagaConfig) -> EventBus:
    return EventBus(db, saga_config.event_bus_name)


@pytest.fixture
def payment_gateway() -> RecordingPaymentGateway:
    return RecordingPaymentGateway()


@pytest.fixture
def license_gateway() -> CountingLicenseGateway:
    return CountingLicenseGateway()


@pytest.fixture
def sent_emails(monkeypatch) -> list[dict]:
    """Capture outgoing emails instead of talking to SMTP."""
    sent = []

    def fake_send(to_email, subject, text_body, html_body=None):
        sent.append({"to": to_email, "subject": subject, "text": text_body, "html": html_body})

    monkeypatch.setattr("market.services.email_service._send_email", fake_send)
    return sent


@pytest.fixture
def dispatcher(db: Session, session_factory, saga_config: SagaConfig, license_gateway, sent_emails) -> EventDispatcher:
    return EventDispatcher(session_factory, default_subscriptions(saga_config, license_gateway), saga_config)


@pytest.fixture(scope="function")
def client(db: Session, saga_config: SagaConfig, payment_gateway) -> Generator[TestClient, None, None]:
    """Create a test client with database and gateway overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_saga_config] = lambda: saga_config
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


ORDER_BODY = {
    "item_ids": ["item1", "item2"],
    "currency": "EUR",
    "total_amount": 1000,
    "customer_email": "a@x.com",
    "payment_method": "CreditCard",
}


@pytest.fixture
def order_body() -> dict:
    return dict(ORDER_BODY)


@pytest.fixture
def created_order(client: TestClient, order_body: dict) -> dict:
    """An order created through the API, still waiting for payment."""
    response = client.post("/api/orders", json=order_body)
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def fetch(db: Session):
    """Read a row as currently committed, bypassing the session's identity map."""

    def _fetch(model, key):
        db.expire_all()
        return db.get(model, key)

    return _fetch
