"""
tests/test_security_log.py - Security audit events
"""
from __future__ import annotations

import json

import pytest
from loguru import logger

from subspace.core.security_log import (
    LoguruSecurityLogger,
    log_auth_attempt,
    log_email_sent,
    log_form_submission,
    log_rate_limit_exceeded,
    log_unauthorized_access,
    log_validation_error,
)
from subspace.models import EVENT_SEVERITY, SecurityEvent, SecurityEventType, Severity


class Recorder:
    def __init__(self) -> None:
        self.events: list[SecurityEvent] = []

    def record(self, event: SecurityEvent) -> None:
        self.events.append(event)


class ExplodingSink:
    def record(self, event: SecurityEvent) -> None:
        raise RuntimeError("disk full")


@pytest.fixture
def captured():
    messages = []
    handler_id = logger.add(messages.append, format="{message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)


def test_every_event_type_has_a_severity():
    assert set(EVENT_SEVERITY) == set(SecurityEventType)


@pytest.mark.parametrize("event_type, severity", [
    (SecurityEventType.AUTH_SUCCESS, Severity.LOW),
    (SecurityEventType.AUTH_FAILURE, Severity.MEDIUM),
    (SecurityEventType.RATE_LIMIT_EXCEEDED, Severity.HIGH),
    (SecurityEventType.UNAUTHORIZED_ACCESS, Severity.HIGH),
    (SecurityEventType.XSS_ATTEMPT, Severity.CRITICAL),
])
def test_severity_follows_event_type(event_type, severity):
    assert SecurityEvent.build(event_type, "1.2.3.4", "/api/x").severity == severity


def test_helpers_build_expected_events():
    sink = Recorder()
    log_auth_attempt(sink, True, "1.2.3.4", "pytest", user_id="admin")
    log_auth_attempt(sink, False, "1.2.3.4", "pytest", details={"reason": "invalid_password"})
    log_rate_limit_exceeded(sink, "1.2.3.4", "/api/auth/login", "pytest")
    log_form_submission(sink, "1.2.3.4", "impalement-protection", "J-1", True, "pytest")
    log_email_sent(sink, "1.2.3.4", "gc@site.example.com", False, "pytest")
    log_validation_error(sink, "1.2.3.4", "/api/forms/submit", {"fieldErrors": {}}, "pytest")
    log_unauthorized_access(sink, "1.2.3.4", "/api/forms/list", "pytest")

    assert [e.type for e in sink.events] == [
        SecurityEventType.AUTH_SUCCESS,
        SecurityEventType.AUTH_FAILURE,
        SecurityEventType.RATE_LIMIT_EXCEEDED,
        SecurityEventType.FORM_SUBMIT,
        SecurityEventType.EMAIL_FAILURE,
        SecurityEventType.VALIDATION_ERROR,
        SecurityEventType.UNAUTHORIZED_ACCESS,
    ]
    assert sink.events[0].user_id == "admin"
    assert sink.events[0].endpoint == "/api/auth/login"
    assert sink.events[3].details == {"formType": "impalement-protection", "jobNumber": "J-1"}
    assert sink.events[4].severity == Severity.MEDIUM
    assert all(e.client_identity == "1.2.3.4" for e in sink.events)


def test_failing_sink_never_propagates():
    log_auth_attempt(ExplodingSink(), False, "1.2.3.4")
    log_unauthorized_access(ExplodingSink(), "1.2.3.4", "/api/forms/list")


def test_any_object_with_record_is_a_sink():
    class Discard:
        def record(self, event: SecurityEvent) -> None:
            return None

    log_form_submission(Discard(), "1.2.3.4", "impalement-protection", "J-1", True)


def test_loguru_logger_writes_tagged_json(captured):
    LoguruSecurityLogger().record(
        SecurityEvent.build(SecurityEventType.AUTH_FAILURE, "1.2.3.4", "/api/auth/login", user_agent="pytest")
    )
    LoguruSecurityLogger().record(
        SecurityEvent.build(SecurityEventType.UNAUTHORIZED_ACCESS, "1.2.3.4", "/api/forms/list")
    )

    assert len(captured) == 2
    first, second = captured
    assert first.record["extra"]["security"] is True
    assert first.record["level"].name == "INFO"
    assert second.record["level"].name == "ERROR"

    text = first.record["message"]
    assert text.startswith("[SECURITY] ")
    payload = json.loads(text[len("[SECURITY] "):])
    assert payload["type"] == "AUTH_FAILURE"
    assert payload["severity"] == "medium"
    assert payload["client_identity"] == "1.2.3.4"
    assert payload["user_agent"] == "pytest"


def test_loguru_logger_swallows_sink_errors():
    class BrokenLogger:
        def bind(self, **kwargs):
            return self

        def info(self, message):
            raise OSError("stdout closed")

        error = info

    LoguruSecurityLogger(sink_logger=BrokenLogger()).record(
        SecurityEvent.build(SecurityEventType.XSS_ATTEMPT, "1.2.3.4", "/api/forms/submit")
    )
