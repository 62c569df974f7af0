"""
subspace/core/passwords.py - bcrypt credential hashing and verification
Covers the administrator singleton (hash held in configuration) and
superintendent accounts (hash held in the superintendent directory).
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional, Protocol

import bcrypt
from loguru import logger

from subspace.config import get_settings
from subspace.models import Superintendent


class SuperintendentDirectory(Protocol):
    def find_by_email(self, email: str) -> Optional[Superintendent]: ...


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """Hash a password with a freshly generated salt. Same input, different output."""
    if rounds is None:
        rounds = get_settings().bcrypt_rounds
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """
    Check a password against a stored bcrypt hash.
    A malformed or truncated hash yields False instead of raising, so a corrupt
    credential record cannot take the login endpoint down.
    """
    try:
        return bool(bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8")))
    except Exception as exc:
        logger.debug(f"Password verification failed on unusable hash: {type(exc).__name__}")
        return False


def verify_admin_password(password: str, reference_hash: Optional[str] = None) -> bool:
    """
    Check the administrator password. Fails closed when no reference hash is
    configured, whatever the supplied password (including "").
    """
    if reference_hash is None:
        reference_hash = get_settings().admin_password_hash
    if not reference_hash:
        logger.error("ADMIN_PASSWORD_HASH is not configured; admin login is disabled.")
        return False
    return verify_password(password, reference_hash)


@lru_cache()
def _dummy_hash() -> str:
    return hash_password("subspace-timing-equalizer")


def verify_superintendent(
    email: str,
    password: str,
    directory: SuperintendentDirectory,
) -> Optional[Superintendent]:
    """
    Return the superintendent when the credentials match, else None.
    Unknown emails still pay for one bcrypt comparison.
    """
    account = directory.find_by_email(email.strip().lower())
    if account is None:
        verify_password(password, _dummy_hash())
        return None
    if not verify_password(password, account.password_hash):
        return None
    return account
