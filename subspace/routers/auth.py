"""
subspace/routers/auth.py - Login, session check, logout
Endpoints: POST /api/auth/login, GET /api/auth/verify, POST /api/auth/logout
"""

from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from subspace.core.auth import (
    clear_session_cookie,
    get_app_settings,
    client_identity,
    get_security_logger,
    get_token_service,
    read_session,
    set_session_cookie,
    user_agent,
)
from subspace.core.passwords import verify_admin_password, verify_superintendent
from subspace.core.rate_limiter import RateLimits, enforce_rate_limit
from subspace.core.security_log import log_auth_attempt, log_validation_error
from subspace.models import LoginRequest, Role
from subspace.utils.validators import flatten_validation_error

router = APIRouter()

LOGIN_ENDPOINT = "/api/auth/login"


def _invalid_credentials() -> JSONResponse:
    # Same message whatever failed, so callers learn nothing about accounts.
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": "Invalid credentials"},
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/auth/login
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/auth/login")
async def login(request: Request) -> Any:
    """
    Exchange a password for a session cookie.
    Without an email the administrator password is checked; with one the
    superintendent directory is used.
    """
    enforce_rate_limit(
        request,
        RateLimits.AUTH,
        "Too many login attempts. Please try again later.",
    )

    ip = client_identity(request)
    ua = user_agent(request)
    sink = get_security_logger(request)
    settings = get_app_settings(request)

    try:
        body = await request.json()
        credentials = LoginRequest.model_validate(body)
    except ValidationError as exc:
        details = flatten_validation_error(exc)
        log_auth_attempt(sink, False, ip, ua, details={"reason": "validation_failed"})
        log_validation_error(sink, ip, LOGIN_ENDPOINT, details, ua)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request data"},
        )
    except ValueError:
        log_auth_attempt(sink, False, ip, ua, details={"reason": "malformed_body"})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request data"},
        )

    if credentials.email is None:
        valid = await run_in_threadpool(
            verify_admin_password,
            credentials.password,
            settings.admin_password_hash or "",
        )
        if not valid:
            log_auth_attempt(sink, False, ip, ua, details={"reason": "invalid_password"})
            return _invalid_credentials()
        user_id, email, role = settings.admin_user_id, settings.admin_email, Role.ADMIN.value
    else:
        account = await run_in_threadpool(
            verify_superintendent,
            str(credentials.email),
            credentials.password,
            request.app.state.superintendents,
        )
        if account is None:
            log_auth_attempt(sink, False, ip, ua, details={"reason": "invalid_password"})
            return _invalid_credentials()
        user_id, email, role = str(account.id), account.email, Role.SUPERINTENDENT.value

    token = get_token_service(request).issue(user_id, email, role)
    log_auth_attempt(sink, True, ip, ua, user_id=user_id)
    logger.info(f"Session issued for {role} {user_id}")

    response = JSONResponse(
        content={"success": True, "message": "Authenticated successfully"},
    )
    set_session_cookie(response, token, settings)
    return response


# ──────────────────────────────────────────────────────────────────────────────
# GET /api/auth/verify
# ──────────────────────────────────────────────────────────────────────────────

@router.get("/auth/verify")
async def verify_session(request: Request) -> Any:
    claims = read_session(request)
    if claims is None:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"authenticated": False},
        )
    return {"authenticated": True, "user": claims.public_user()}


# ──────────────────────────────────────────────────────────────────────────────
# POST /api/auth/logout
# ──────────────────────────────────────────────────────────────────────────────

@router.post("/auth/logout")
async def logout(request: Request) -> Any:
    """Drop the session cookie. Issued tokens simply run out their lifetime."""
    response = JSONResponse(content={"success": True})
    clear_session_cookie(response, get_app_settings(request))
    return response
