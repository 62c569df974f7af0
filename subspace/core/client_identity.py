"""
subspace/core/client_identity.py - Client address from proxy headers
The resolved identity is the rate limit key and the address recorded in
security events.
"""
from __future__ import annotations

from typing import Mapping, Optional

UNKNOWN_CLIENT = "unknown"

# First present header wins.
_IDENTITY_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case-sensitive; Starlette Headers are not.
        for key, candidate in headers.items():
            if key.lower() == name:
                value = candidate
                break
    if value is None:
        return None
    value = value.strip()
    return value or None


def resolve_client_identity(headers: Mapping[str, str]) -> str:
    """Return the trust-ordered client address, or "unknown"."""
    forwarded_for = _header(headers, "x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    for name in _IDENTITY_HEADERS[1:]:
        value = _header(headers, name)
        if value:
            return value

    return UNKNOWN_CLIENT
