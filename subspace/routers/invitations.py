"""
subspace/routers/invitations.py - Subcontractor invitations
Endpoint: POST /api/invite-subcontractor (signed-in superintendent or admin)
"""

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from subspace.core.auth import (
    client_identity,
    get_app_settings,
    get_security_logger,
    require_session,
    user_agent,
)
from subspace.core.logging import log_error
from subspace.core.rate_limiter import RateLimitResult, RateLimits, rate_limited
from subspace.core.security_log import log_email_sent, log_validation_error
from subspace.models import InvitationRequest, SessionClaims
from subspace.services import email_service
from subspace.utils.validators import flatten_validation_error

router = APIRouter()


@router.post("/invite-subcontractor")
async def invite_subcontractor(
    request: Request,
    _limit: RateLimitResult = Depends(rate_limited(RateLimits.FORM_SUBMIT)),
    claims: SessionClaims = Depends(require_session),
) -> Any:
    """
    Email a subcontractor a link to the inspection form with their company,
    job number and superintendent already filled in.
    """
    endpoint = request.url.path
    ip = client_identity(request)
    ua = user_agent(request)
    sink = get_security_logger(request)

    try:
        body = await request.json()
        invite = InvitationRequest.model_validate(body)
    except ValidationError as exc:
        log_validation_error(sink, ip, endpoint, flatten_validation_error(exc), ua)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields"},
        )
    except ValueError:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Missing required fields"},
        )

    form_url = email_service.build_invitation_url(get_app_settings(request).public_base_url, invite)
    account = request.app.state.superintendents.find_by_email(claims.email)
    superintendent_name = account.name if account else "Your Superintendent"

    try:
        sent = await run_in_threadpool(
            email_service.send_invitation,
            request.app.state.mailer,
            invite,
            form_url,
            superintendent_name,
        )
    except Exception as exc:
        log_error("invitations", "send_invitation", exc, {"job_number": invite.job_number})
        sent = False

    log_email_sent(sink, ip, str(invite.subcontractor_email), sent, ua, endpoint=endpoint)
    if not sent:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to send invitation"},
        )
    return {"success": True, "message": "Invitation sent successfully", "formUrl": form_url}
