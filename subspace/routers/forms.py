"""
subspace/routers/forms.py - Inspection form submission and review
Endpoints: POST /api/forms/submit, POST /api/forms/submit-and-email,
GET /api/forms/list, PATCH /api/forms/{submission_id}/review
The submit endpoint serves live submissions and offline queue replays alike.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from subspace.core.auth import (
    client_identity,
    get_app_settings,
    get_security_logger,
    is_admin,
    require_session,
    user_agent,
)
from subspace.core.logging import log_error
from subspace.core.rate_limiter import (
    RateLimitResult,
    RateLimits,
    enforce_rate_limit,
    rate_limited,
)
from subspace.core.security_log import (
    log_email_sent,
    log_form_submission,
    log_unauthorized_access,
    log_validation_error,
)
from subspace.models import FormSubmissionRequest, ReviewRequest, SessionClaims
from subspace.repositories import FormRepository, normalize_email
from subspace.services import email_service
from subspace.utils.validators import (
    flatten_validation_error,
    validate_email_allowlist,
    validate_signature,
)

router = APIRouter()

SUBMIT_RATE_MESSAGE = "Too many form submissions. Please try again later."


def _bad_request(content: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=content)


def _repository(request: Request) -> FormRepository:
    return request.app.state.form_repository


# ──────────────────────────────────────────────────────────────────────────────
# Shared submission pipeline
# ──────────────────────────────────────────────────────────────────────────────

async def _handle_submission(request: Request, require_email: bool) -> JSONResponse:
    """
    Rate limit, validate, persist, then optionally email the report.
    An email failure does not undo the stored submission.
    """
    endpoint = request.url.path
    enforce_rate_limit(request, RateLimits.FORM_SUBMIT, SUBMIT_RATE_MESSAGE)

    ip = client_identity(request)
    ua = user_agent(request)
    sink = get_security_logger(request)

    try:
        try:
            body = await request.json()
        except ValueError:
            log_validation_error(sink, ip, endpoint, {"formErrors": ["Malformed JSON body"]}, ua)
            return _bad_request({"error": "Invalid form data"})

        if isinstance(body, dict) and body.get("signature"):
            signature_errors = validate_signature(body["signature"])
            if signature_errors:
                details = {"formErrors": signature_errors, "fieldErrors": {}}
                log_validation_error(sink, ip, endpoint, details, ua)
                return _bad_request({"error": "Invalid signature data", "details": details})

        try:
            form = FormSubmissionRequest.model_validate(body)
        except ValidationError as exc:
            details = flatten_validation_error(exc)
            log_validation_error(sink, ip, endpoint, details, ua)
            return _bad_request({"error": "Invalid form data", "details": details})

        options = form.email_options
        if require_email and options is None:
            log_validation_error(sink, ip, endpoint, {"fieldErrors": {"emailOptions": ["Required"]}}, ua)
            return _bad_request({"error": "Recipient email is required"})

        if options is not None:
            allowlist_error = validate_email_allowlist(
                str(options.recipient_email),
                get_app_settings(request).allowed_email_domains,
            )
            if allowlist_error:
                log_validation_error(sink, ip, endpoint, {"email": allowlist_error}, ua)
                return _bad_request({"error": allowlist_error})

        data = form.data.model_dump(mode="json", by_alias=True, exclude_none=True)
        if form.signature:
            data["signature"] = form.signature

        submission = _repository(request).create(
            form_type=form.form_type,
            job_number=form.job_number,
            submitted_by=form.submitted_by,
            submitted_by_email=str(form.submitted_by_email),
            submitted_by_company=form.submitted_by_company,
            data=data,
            superintendent_email=str(form.superintendent_email) if form.superintendent_email else None,
        )
        log_form_submission(sink, ip, form.form_type, form.job_number, True, ua, endpoint=endpoint)

        if options is None:
            return JSONResponse(content={
                "success": True,
                "id": submission.id,
                "message": "Form submitted successfully",
            })

        recipient = str(options.recipient_email)
        try:
            sent = await run_in_threadpool(
                email_service.send_form_report,
                request.app.state.mailer,
                submission,
                options,
            )
        except Exception as exc:
            log_error("forms", "send_form_report", exc, {"submission_id": submission.id})
            sent = False

        log_email_sent(sink, ip, recipient, sent, ua, endpoint=endpoint)
        if sent:
            return JSONResponse(content={
                "success": True,
                "id": submission.id,
                "message": "Form submitted and emailed successfully",
                "emailSent": True,
            })
        return JSONResponse(content={
            "success": True,
            "id": submission.id,
            "message": "Form submitted but email failed to send",
            "emailSent": False,
            "error": "Email sending failed",
        })

    except Exception as exc:
        log_error("forms", "submit", exc, {"endpoint": endpoint})
        log_form_submission(sink, ip, "unknown", "unknown", False, ua, endpoint=endpoint)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to submit form"},
        )


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/forms/submit
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/forms/submit")
async def submit_form(request: Request) -> Any:
    """Store a submission. Emails the report when emailOptions is present."""
    return await _handle_submission(request, require_email=False)


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/forms/submit-and-email
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/forms/submit-and-email")
async def submit_and_email_form(request: Request) -> Any:
    """Store a submission and email the report. emailOptions is mandatory."""
    return await _handle_submission(request, require_email=True)


# ──────────────────────────────────────────────────────────────────────────────
# GET /api/forms/list
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/forms/list")
async def list_forms(
    request: Request,
    _limit: RateLimitResult = Depends(rate_limited(RateLimits.API)),
    claims: SessionClaims = Depends(require_session),
) -> Any:
    """Newest first. Superintendents only see submissions addressed to them."""
    scope: Optional[str] = None if is_admin(claims) else normalize_email(claims.email)
    submissions = _repository(request).list(superintendent_email=scope)
    return {
        "success": True,
        "submissions": [s.model_dump(mode="json") for s in submissions],
    }


# ──────────────────────────────────────────────────────────────────────────────
# PATCH /api/forms/{submission_id}/review
# ──────────────────────────────────────────────────────────────────────────────

@router.patch("/forms/{submission_id}/review")
async def review_form(
    submission_id: str,
    request: Request,
    _limit: RateLimitResult = Depends(rate_limited(RateLimits.API)),
    claims: SessionClaims = Depends(require_session),
) -> Any:
    """Mark a submission reviewed (or not) by the signed-in superintendent."""
    try:
        body = await request.json()
        review = ReviewRequest.model_validate(body)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid reviewed status",
        )

    try:
        numeric_id = int(submission_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid submission ID",
        )

    repository = _repository(request)
    submission = repository.get(numeric_id)
    if submission is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Submission not found",
        )

    owner = submission.superintendent_email
    if owner and normalize_email(owner) != normalize_email(claims.email) and not is_admin(claims):
        log_unauthorized_access(
            get_security_logger(request),
            client_identity(request),
            request.url.path,
            user_agent=user_agent(request),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to review this submission",
        )

    updated = repository.set_reviewed(numeric_id, review.reviewed, claims.email)
    logger.info(f"Submission {numeric_id} reviewed={review.reviewed} by {claims.email}")
    return {"success": True, "submission": updated.model_dump(mode="json")}
