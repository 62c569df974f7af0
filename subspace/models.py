"""
subspace/models.py - All Pydantic data schemas
Session claims, security events, offline queue records, and the
impalement protection form payloads accepted by the API.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictBool
from pydantic.alias_generators import to_camel


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class Role(str, Enum):
    ADMIN = "admin"
    SUPERINTENDENT = "superintendent"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    AUTH_RATE_LIMIT = "AUTH_RATE_LIMIT"
    FORM_SUBMIT = "FORM_SUBMIT"
    FORM_SUBMIT_FAILURE = "FORM_SUBMIT_FAILURE"
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILURE = "EMAIL_FAILURE"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    XSS_ATTEMPT = "XSS_ATTEMPT"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"


# Severity is a property of the event type, never chosen by the caller.
EVENT_SEVERITY: dict[SecurityEventType, Severity] = {
    SecurityEventType.AUTH_SUCCESS: Severity.LOW,
    SecurityEventType.FORM_SUBMIT: Severity.LOW,
    SecurityEventType.EMAIL_SENT: Severity.LOW,
    SecurityEventType.AUTH_FAILURE: Severity.MEDIUM,
    SecurityEventType.FORM_SUBMIT_FAILURE: Severity.MEDIUM,
    SecurityEventType.EMAIL_FAILURE: Severity.MEDIUM,
    SecurityEventType.VALIDATION_ERROR: Severity.MEDIUM,
    SecurityEventType.AUTH_RATE_LIMIT: Severity.HIGH,
    SecurityEventType.RATE_LIMIT_EXCEEDED: Severity.HIGH,
    SecurityEventType.UNAUTHORIZED_ACCESS: Severity.HIGH,
    SecurityEventType.XSS_ATTEMPT: Severity.CRITICAL,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Wire models use camelCase keys, Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ──────────────────────────────────────────────────────────────────────────────
# Sessions
# ──────────────────────────────────────────────────────────────────────────────

class SessionClaims(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    role: str
    issued_at: int
    expires_at: int

    def public_user(self) -> dict[str, str]:
        return {"userId": self.user_id, "email": self.email, "role": self.role}


class LoginRequest(BaseModel):
    password: str = Field(min_length=1)
    email: Optional[EmailStr] = None


class Superintendent(BaseModel):
    id: int
    email: str
    name: str
    password_hash: str


# ──────────────────────────────────────────────────────────────────────────────
# Security events
# ──────────────────────────────────────────────────────────────────────────────

class SecurityEvent(BaseModel):
    type: SecurityEventType
    timestamp: datetime = Field(default_factory=_utcnow)
    client_identity: str
    endpoint: str
    severity: Severity
    user_agent: Optional[str] = None
    user_id: Optional[str] = None
    details: Optional[dict[str, Any]] = None

    @classmethod
    def build(
        cls,
        event_type: SecurityEventType,
        client_identity: str,
        endpoint: str,
        user_agent: Optional[str] = None,
        user_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> "SecurityEvent":
        return cls(
            type=event_type,
            client_identity=client_identity,
            endpoint=endpoint,
            severity=EVENT_SEVERITY[event_type],
            user_agent=user_agent,
            user_id=user_id,
            details=details,
        )


# ──────────────────────────────────────────────────────────────────────────────
# Offline submission queue
# ──────────────────────────────────────────────────────────────────────────────

class PendingSubmission(BaseModel):
    id: str
    payload: Any
    enqueued_at: int  # epoch millis
    retry_count: int = Field(default=0, ge=0)
    last_error: Optional[str] = None


class SyncResult(BaseModel):
    succeeded: int = 0
    failed: int = 0
    # Entries past the retry ceiling, kept but not attempted this pass.
    held: int = 0


class SubmitOutcome(BaseModel):
    delivered: bool
    queued: bool = False
    submission_id: Optional[str] = None
    status_code: Optional[int] = None
    response: Optional[Any] = None


# ──────────────────────────────────────────────────────────────────────────────
# Impalement protection form
# ──────────────────────────────────────────────────────────────────────────────

class CompressedImage(CamelModel):
    data_url: str = Field(pattern=r"^data:image/")
    size: float = Field(gt=0)
    width: float = Field(gt=0)
    height: float = Field(gt=0)


class Inspection(CamelModel):
    start_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(pattern=r"^\d{2}:\d{2}$")
    location: str = Field(min_length=1, max_length=500)
    location_photos: Optional[list[CompressedImage]] = None
    hazard_description: str = Field(min_length=1, max_length=2000)
    hazard_photos: Optional[list[CompressedImage]] = None
    corrective_measures: str = Field(min_length=1, max_length=2000)
    measures_photos: Optional[list[CompressedImage]] = None
    creating_employer: str = Field(min_length=1, max_length=200)
    supervisor: str = Field(min_length=1, max_length=100)


class InspectionData(CamelModel):
    date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    inspections: list[Inspection]


class EmailOptions(CamelModel):
    recipient_email: EmailStr
    email_subject: Optional[str] = Field(default=None, max_length=200)


class FormSubmissionRequest(CamelModel):
    form_type: str = Field(min_length=1)
    job_number: str = Field(min_length=1, max_length=50)
    submitted_by: str = Field(min_length=1, max_length=100)
    submitted_by_email: EmailStr
    submitted_by_company: str = Field(min_length=1, max_length=200)
    superintendent_email: Optional[EmailStr] = None
    signature: Optional[str] = None
    data: InspectionData
    email_options: Optional[EmailOptions] = None


class StoredSubmission(BaseModel):
    id: int
    form_type: str
    job_number: str
    submitted_by: str
    submitted_by_email: str
    submitted_by_company: str
    superintendent_email: Optional[str] = None
    data: dict[str, Any]
    submitted_at: datetime = Field(default_factory=_utcnow)
    reviewed: bool = False
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None


class ReviewRequest(BaseModel):
    reviewed: StrictBool


class InvitationRequest(CamelModel):
    subcontractor_name: str = Field(min_length=1, max_length=100)
    subcontractor_email: EmailStr
    subcontractor_company: str = Field(min_length=1, max_length=200)
    job_number: str = Field(min_length=1, max_length=50)
    superintendent_email: EmailStr
    project_email: Optional[EmailStr] = None
    personal_note: Optional[str] = Field(default=None, max_length=2000)
