"""
tests/conftest.py - Shared pytest fixtures
Environment is pinned before anything from subspace is imported, because
get_settings() is cached for the life of the process.
"""
from __future__ import annotations

import os

import bcrypt

ADMIN_PASSWORD = "correct-horse-battery-staple"
JWT_SECRET = "test-secret-that-is-definitely-longer-than-32-chars"

os.environ["ENVIRONMENT"] = "testing"
os.environ["JWT_SECRET"] = JWT_SECRET
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_PASSWORD_HASH"] = bcrypt.hashpw(
    ADMIN_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)
).decode("utf-8")
os.environ["PUBLIC_BASE_URL"] = "https://forms.subspace.example.com"
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("EMAIL_ALLOWLIST", None)

import pytest
from fastapi.testclient import TestClient

from subspace.config import get_settings
from subspace.core.rate_limiter import RateLimiter
from subspace.main import create_app
from subspace.models import SecurityEvent, SecurityEventType
from subspace.repositories import InMemoryFormRepository, InMemorySuperintendentDirectory

get_settings.cache_clear()

SUPER_EMAIL = "super@subspace.example.com"
SUPER_PASSWORD = "rebar-caps-on"
OTHER_SUPER_EMAIL = "other.super@subspace.example.com"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingSecurityLogger:
    def __init__(self) -> None:
        self.events: list[SecurityEvent] = []

    def record(self, event: SecurityEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: SecurityEventType) -> list[SecurityEvent]:
        return [e for e in self.events if e.type == event_type]


class FakeMailer:
    def __init__(self, succeed: bool = True) -> None:
        self.succeed = succeed
        self.sent: list[dict] = []

    def send(self, to, subject, html_body, plain_body, bcc=None) -> bool:
        self.sent.append({
            "to": to,
            "subject": subject,
            "html": html_body,
            "text": plain_body,
            "bcc": bcc,
        })
        return self.succeed


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def security_events() -> RecordingSecurityLogger:
    return RecordingSecurityLogger()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def form_repository() -> InMemoryFormRepository:
    return InMemoryFormRepository()


@pytest.fixture
def superintendents() -> InMemorySuperintendentDirectory:
    directory = InMemorySuperintendentDirectory()
    directory.add(SUPER_EMAIL, "Sam Superintendent", SUPER_PASSWORD, rounds=4)
    directory.add(OTHER_SUPER_EMAIL, "Olive Other", SUPER_PASSWORD, rounds=4)
    return directory


@pytest.fixture
def app(clock, security_events, mailer, form_repository, superintendents):
    return create_app(
        form_repository=form_repository,
        superintendents=superintendents,
        mailer=mailer,
        security_logger=security_events,
        rate_limiter=RateLimiter(clock_ms=clock),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client):
    response = client.post("/api/auth/login", json={"password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return client


@pytest.fixture
def super_client(client):
    response = client.post(
        "/api/auth/login",
        json={"email": SUPER_EMAIL, "password": SUPER_PASSWORD},
    )
    assert response.status_code == 200
    return client


@pytest.fixture
def form_payload() -> dict:
    return {
        "formType": "impalement-protection",
        "jobNumber": "J-1001",
        "submittedBy": "Dana Cruz",
        "submittedByEmail": "dana@rebarco.example.com",
        "submittedByCompany": "Rebar Co",
        "superintendentEmail": SUPER_EMAIL,
        "signature": "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAAB",
        "data": {
            "date": "2026-10-18",
            "inspections": [
                {
                    "startTime": "08:00",
                    "endTime": "09:30",
                    "location": "Level 3 deck, grid C-4",
                    "hazardDescription": "Exposed vertical rebar along the east wall",
                    "correctiveMeasures": "Installed mushroom caps on all exposed ends",
                    "creatingEmployer": "Rebar Co",
                    "supervisor": "Lee Park",
                },
            ],
        },
    }


@pytest.fixture
def admin_password() -> str:
    return ADMIN_PASSWORD
