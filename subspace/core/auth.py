"""
subspace/core/auth.py - Session cookie handling and FastAPI auth dependencies
The session token travels in an HttpOnly cookie; routes that need a signed-in
superintendent or administrator depend on require_session.
"""
from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request, Response, status

from subspace.config import Settings
from subspace.core.client_identity import resolve_client_identity
from subspace.core.security_log import SecurityEventLogger, log_unauthorized_access
from subspace.core.tokens import SessionTokenService
from subspace.models import Role, SessionClaims


# ──────────────────────────────────────────────────────────────────────────────
# Request context
# ──────────────────────────────────────────────────────────────────────────────

def client_identity(request: Request) -> str:
    return resolve_client_identity(request.headers)


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> SessionTokenService:
    return request.app.state.token_service


def get_security_logger(request: Request) -> SecurityEventLogger:
    return request.app.state.security_logger


# ──────────────────────────────────────────────────────────────────────────────
# Session cookie
# ──────────────────────────────────────────────────────────────────────────────

def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    """HttpOnly, SameSite=Strict, Secure in production, lives as long as the token."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_lifetime_seconds,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.session_cookie_name,
        path="/",
        secure=settings.is_production,
        httponly=True,
        samesite="strict",
    )


def read_session(request: Request) -> Optional[SessionClaims]:
    """Claims from the session cookie, or None when absent or invalid."""
    token = request.cookies.get(get_app_settings(request).session_cookie_name)
    if not token:
        return None
    return get_token_service(request).verify(token)


# ──────────────────────────────────────────────────────────────────────────────
# Dependencies
# ──────────────────────────────────────────────────────────────────────────────

async def require_session(request: Request) -> SessionClaims:
    """Reject the request with 401 unless it carries a valid session cookie."""
    claims = read_session(request)
    if claims is None:
        log_unauthorized_access(
            get_security_logger(request),
            client_identity(request),
            request.url.path,
            user_agent=user_agent(request),
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )
    return claims


def is_admin(claims: SessionClaims) -> bool:
    return claims.role == Role.ADMIN.value
