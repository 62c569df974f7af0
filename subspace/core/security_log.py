"""
subspace/core/security_log.py - Security audit trail
Write-only, fire-and-forget. Every core component receives a
SecurityEventLogger and nothing it does can fail the request being described.
"""
from __future__ import annotations

import json
from typing import Any, Optional, Protocol

from loguru import logger

from subspace.core.logging import _build_log_record
from subspace.models import SecurityEvent, SecurityEventType, Severity


class SecurityEventLogger(Protocol):
    def record(self, event: SecurityEvent) -> None: ...


class LoguruSecurityLogger:
    """Writes security events as structured JSON through loguru."""

    def __init__(self, sink_logger=None) -> None:
        self._logger = (sink_logger or logger).bind(security=True)

    def record(self, event: SecurityEvent) -> None:
        try:
            payload = _build_log_record("security", event.type.value, event.model_dump(mode="json"))
            line = "[SECURITY] " + json.dumps(payload, default=str)
            if event.severity in (Severity.HIGH, Severity.CRITICAL):
                self._logger.error(line)
            else:
                self._logger.info(line)
        except Exception as exc:
            # Audit logging is best effort; the request proceeds regardless.
            try:
                logger.warning(f"Security event dropped: {type(exc).__name__}")
            except Exception:
                pass


# ──────────────────────────────────────────────────────────────────────────────
# Event helpers - severity always comes from the event type
# ──────────────────────────────────────────────────────────────────────────────

def _emit(sink: SecurityEventLogger, event: SecurityEvent) -> None:
    try:
        sink.record(event)
    except Exception:
        pass


def log_auth_attempt(
    sink: SecurityEventLogger,
    success: bool,
    client_identity: str,
    user_agent: Optional[str] = None,
    endpoint: str = "/api/auth/login",
    user_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    event_type = SecurityEventType.AUTH_SUCCESS if success else SecurityEventType.AUTH_FAILURE
    _emit(sink, SecurityEvent.build(
        event_type, client_identity, endpoint,
        user_agent=user_agent, user_id=user_id, details=details,
    ))


def log_rate_limit_exceeded(
    sink: SecurityEventLogger,
    client_identity: str,
    endpoint: str,
    user_agent: Optional[str] = None,
) -> None:
    _emit(sink, SecurityEvent.build(
        SecurityEventType.RATE_LIMIT_EXCEEDED, client_identity, endpoint, user_agent=user_agent,
    ))


def log_form_submission(
    sink: SecurityEventLogger,
    client_identity: str,
    form_type: str,
    job_number: str,
    success: bool,
    user_agent: Optional[str] = None,
    endpoint: str = "/api/forms/submit",
) -> None:
    event_type = SecurityEventType.FORM_SUBMIT if success else SecurityEventType.FORM_SUBMIT_FAILURE
    _emit(sink, SecurityEvent.build(
        event_type, client_identity, endpoint,
        user_agent=user_agent,
        details={"formType": form_type, "jobNumber": job_number},
    ))


def log_email_sent(
    sink: SecurityEventLogger,
    client_identity: str,
    recipient_email: str,
    success: bool,
    user_agent: Optional[str] = None,
    endpoint: str = "/api/forms/submit-and-email",
) -> None:
    event_type = SecurityEventType.EMAIL_SENT if success else SecurityEventType.EMAIL_FAILURE
    _emit(sink, SecurityEvent.build(
        event_type, client_identity, endpoint,
        user_agent=user_agent,
        details={"recipientEmail": recipient_email},
    ))


def log_validation_error(
    sink: SecurityEventLogger,
    client_identity: str,
    endpoint: str,
    errors: Any,
    user_agent: Optional[str] = None,
) -> None:
    _emit(sink, SecurityEvent.build(
        SecurityEventType.VALIDATION_ERROR, client_identity, endpoint,
        user_agent=user_agent, details={"errors": errors},
    ))


def log_unauthorized_access(
    sink: SecurityEventLogger,
    client_identity: str,
    endpoint: str,
    user_agent: Optional[str] = None,
) -> None:
    _emit(sink, SecurityEvent.build(
        SecurityEventType.UNAUTHORIZED_ACCESS, client_identity, endpoint, user_agent=user_agent,
    ))
