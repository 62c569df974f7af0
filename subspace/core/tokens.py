"""
subspace/core/tokens.py - Signed, time-limited session tokens (HS256 JWT)
Tokens carry {userId, email, role, iat, exp}. They are minted once per login
and never refreshed or mutated.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Optional

import jwt
from loguru import logger

from subspace.config import ConfigurationError, Settings
from subspace.models import SessionClaims

MIN_SECRET_LENGTH = 32
REQUIRED_STRING_CLAIMS = ("userId", "email", "role")


class SessionTokenService:
    """Issues and verifies session tokens with a server-held secret."""

    def __init__(
        self,
        secret: Optional[str],
        lifetime_seconds: int = 8 * 60 * 60,
        algorithm: str = "HS256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ConfigurationError(
                "JWT_SECRET environment variable is not set. "
                "The service cannot start without a signing secret."
            )
        if len(secret) < MIN_SECRET_LENGTH:
            raise ConfigurationError(
                f"JWT_SECRET must be at least {MIN_SECRET_LENGTH} characters long."
            )
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self.lifetime_seconds = lifetime_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionTokenService":
        return cls(
            secret=settings.jwt_secret,
            lifetime_seconds=settings.session_lifetime_seconds,
            algorithm=settings.jwt_algorithm,
        )

    def issue(self, user_id: str, email: str, role: str) -> str:
        """Mint a token for the given identity, valid for the session lifetime."""
        now = int(self._clock())
        payload = {
            "userId": user_id,
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + self.lifetime_seconds,
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: Any) -> Optional[SessionClaims]:
        """
        Return the claims of a valid, unexpired token, otherwise None.
        Never raises: empty strings, wrong segment counts, bad signatures,
        expired tokens and incomplete payloads all map to None.
        """
        if not isinstance(token, str) or not token:
            return None
        if token.count(".") != 2:
            return None

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                # Expiry is checked below against the injected clock.
                options={"verify_exp": False, "verify_iat": False},
            )
        except jwt.PyJWTError as exc:
            logger.debug(f"Session token rejected: {type(exc).__name__}")
            return None
        except Exception as exc:
            logger.debug(f"Session token undecodable: {type(exc).__name__}")
            return None

        if not all(isinstance(payload.get(name), str) for name in REQUIRED_STRING_CLAIMS):
            return None

        issued_at = payload.get("iat")
        expires_at = payload.get("exp")
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            return None
        if not isinstance(issued_at, int) or isinstance(issued_at, bool):
            return None
        if expires_at <= int(self._clock()):
            return None

        return SessionClaims(
            user_id=payload["userId"],
            email=payload["email"],
            role=payload["role"],
            issued_at=issued_at,
            expires_at=expires_at,
        )
