"""
subspace/utils/validators.py - Request payload checks beyond the Pydantic schemas
Signature data URLs, recipient domain allowlist, and a compact error summary
for 400 responses.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import ValidationError

SIGNATURE_PREFIX = "data:image/png;base64,"
# ~1 MB of image data once base64 encoded
MAX_SIGNATURE_LENGTH = 1_400_000


def validate_signature(value: Any) -> list[str]:
    """Return a list of problems with a signature payload (empty when valid)."""
    if not isinstance(value, str):
        return ["Signature must be a string"]
    errors: list[str] = []
    if not value.startswith(SIGNATURE_PREFIX):
        errors.append("Signature must be a valid PNG data URL")
    if len(value) > MAX_SIGNATURE_LENGTH:
        errors.append("Signature image is too large (max 1MB)")
    return errors


def validate_email_allowlist(email: str, allowed_domains: list[str]) -> Optional[str]:
    """
    None when the address may receive reports, otherwise the error message.
    An empty allowlist means every domain is accepted.
    """
    if not allowed_domains:
        return None
    domain = email.rsplit("@", 1)[-1].lower() if "@" in email else ""
    if domain in {d.lower() for d in allowed_domains}:
        return None
    return f"Email domain not allowed. Allowed domains: {', '.join(allowed_domains)}"


def flatten_validation_error(exc: ValidationError) -> dict[str, Any]:
    """
    Collapse Pydantic errors into {"formErrors": [...], "fieldErrors": {path: [...]}}.
    Paths use the wire (camelCase) field names joined with dots.
    """
    form_errors: list[str] = []
    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        if not loc:
            form_errors.append(message)
            continue
        field_errors.setdefault(loc, []).append(message)
    return {"formErrors": form_errors, "fieldErrors": field_errors}
