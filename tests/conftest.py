"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any smsrelay import so the
cached settings, the engine and the logging setup pick them up.
Collaborators outside this service (FCM, quota policy, webhook endpoint)
are replaced through app.dependency_overrides.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_smsrelay.db")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("WEBHOOK_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

# Clear settings cache before any app imports to ensure test env vars are used
from smsrelay.config import get_settings
get_settings.cache_clear()

from smsrelay import models  # noqa: E402,F401
from smsrelay.errors import QuotaExceeded  # noqa: E402
from smsrelay.main import app, get_quota_guard, get_transport, get_webhook_notifier  # noqa: E402
from smsrelay.schemas import SendOutcome, TransportResponse  # noqa: E402
from smsrelay.storage import Base, SessionLocal, engine  # noqa: E402

OWNER_ID = "owner-1"
OWNER_HEADERS = {"X-Owner-Id": OWNER_ID}


class FakeTransport:
    """
    Records every send_each call and answers from a script.

    Each entry of outcomes is either a list of booleans (one per message,
    True = accepted) or an exception to raise. When the script runs out,
    every message is accepted.
    """

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []

    def send_each(self, messages):
        self.calls.append(list(messages))
        outcome = self.outcomes.pop(0) if self.outcomes else [True] * len(messages)
        if isinstance(outcome, Exception):
            raise outcome
        responses = [
            SendOutcome(success=True, message_id=f"projects/test/messages/{i}")
            if ok else SendOutcome(success=False, error="Requested entity was not found.")
            for i, ok in enumerate(outcome)
        ]
        return TransportResponse(
            success_count=sum(1 for ok in outcome if ok),
            failure_count=sum(1 for ok in outcome if not ok),
            responses=responses,
        )


class FakeQuotaGuard:
    """Records every quota question; refuses when refuse is set."""

    def __init__(self, refuse=False):
        self.refuse = refuse
        self.calls = []

    def can_perform_action(self, owner_id, action, unit_count):
        self.calls.append((owner_id, action, unit_count))
        if self.refuse:
            raise QuotaExceeded()


class FakeNotifier:
    def __init__(self, error=None):
        self.error = error
        self.notifications = []

    def deliver_notification(self, notification):
        self.notifications.append(notification)
        if self.error:
            raise self.error


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def quota_guard():
    return FakeQuotaGuard()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture(scope="function")
def client(transport, quota_guard, notifier):
    """Create test client with fresh database and fake collaborators for each test."""
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_transport] = lambda: transport
    app.dependency_overrides[get_quota_guard] = lambda: quota_guard
    app.dependency_overrides[get_webhook_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)



def register_device(client, **overrides) -> dict:
    """Helper to register a device via the API and return its JSON."""
    body = {
        "fcmToken": "fcm-token-1",
        "brand": "google",
        "model": "Pixel 7",
        "buildId": "TQ3A.230805.001",
    }
    body.update(overrides)
    response = client.post("/api/v1/gateway/devices", json=body, headers=OWNER_HEADERS)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def device(client) -> dict:
    return register_device(client)


def fetch_all(model, **filters) -> list:
    """Read rows in a fresh session so background task writes are visible."""
    with SessionLocal() as session:
        return session.query(model).filter_by(**filters).all()


def fetch_device(device_id: str):
    with SessionLocal() as session:
        return session.get(models.Device, device_id)
