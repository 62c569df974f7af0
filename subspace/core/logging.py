"""
subspace/core/logging.py - loguru structured JSON logging setup
Operational log helpers. Security audit events go through
subspace/core/security_log.py, which builds on the same record format.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    The hosting platform captures stdout and ships it to the operator log sink.
    """
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,
        backtrace=True,
        diagnose=False,  # never dump local variables (passwords, tokens) into logs
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


# ──────────────────────────────────────────────────────────────────────────────
# Operational log event helpers
# ──────────────────────────────────────────────────────────────────────────────

def log_rate_limit_sweep(removed: int, remaining: int) -> None:
    """Housekeeping pass over the rate limit store."""
    record = _build_log_record("rate_limiter", "sweep", {
        "removed": removed,
        "remaining": remaining,
    })
    logger.debug(json.dumps(record))


def log_queue_sync(
    succeeded: int,
    failed: int,
    held: int,
    pending: int,
    latency_ms: float,
) -> None:
    """One drain pass of the offline submission queue."""
    record = _build_log_record("offline_queue", "drain_and_sync", {
        "succeeded": succeeded,
        "failed": failed,
        "held": held,
        "pending_after": pending,
        "latency_ms": round(latency_ms, 2),
    })
    logger.info(json.dumps(record))


def log_email_send(
    recipient_domain: str,
    subject: str,
    success: bool,
    latency_ms: float,
    error: Optional[str] = None,
) -> None:
    """Every outbound email attempt."""
    record = _build_log_record("mailer", "email_send", {
        "recipient_domain": recipient_domain,
        "subject": subject[:200],
        "success": success,
        "latency_ms": round(latency_ms, 2),
        "error": error,
    })
    logger.info(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error is logged with full context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
