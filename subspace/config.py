"""
subspace/config.py - Pydantic BaseSettings configuration
Every tunable of the API service and the offline sync client lives here.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when a required secret is absent or unusable at startup."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    public_base_url: str = "http://localhost:8000"
    cors_origins: list[str] = []

    # ── Sessions ──────────────────────────────────────────────────────────────
    # Startup refuses to run without a 32+ character secret.
    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    session_lifetime_seconds: int = 8 * 60 * 60
    session_cookie_name: str = "auth-token"

    # ── Credentials ───────────────────────────────────────────────────────────
    # bcrypt hash of the administrator password. Unset means admin login is closed.
    admin_password_hash: Optional[str] = None
    admin_user_id: str = "admin"
    admin_email: str = "admin@subspace.local"
    bcrypt_rounds: int = 10

    # ── Rate limiting ─────────────────────────────────────────────────────────
    rate_limit_sweep_seconds: int = 10 * 60

    # ── Email (Resend HTTP API) ───────────────────────────────────────────────
    resend_api_key: Optional[str] = None
    resend_api_url: str = "https://api.resend.com/emails"
    resend_from_email: str = "forms@subspace.dev"
    email_timeout_seconds: float = 15.0
    # Comma separated recipient domains. Empty means any domain.
    email_allowlist: str = ""

    # ── Offline submission queue (client side) ────────────────────────────────
    offline_queue_path: str = "subspace_offline.db"
    offline_submit_url: str = "http://localhost:8000/api/forms/submit"
    offline_request_timeout: float = 15.0
    offline_max_retries: Optional[int] = 20

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def allowed_email_domains(self) -> list[str]:
        return [d.strip().lower() for d in self.email_allowlist.split(",") if d.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
