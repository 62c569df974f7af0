"""
subspace/clients/resend_client.py - Resend transactional email API client
Sends one message per call over httpx with a bounded retry.
"""
from __future__ import annotations

import time
from typing import Optional, Protocol

import httpx
from loguru import logger

from subspace.config import Settings
from subspace.core import logging as app_logging


class Mailer(Protocol):
    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        plain_body: str,
        bcc: Optional[list[str]] = None,
    ) -> bool: ...


class ResendMailer:
    def __init__(
        self,
        api_key: str,
        from_address: str,
        api_url: str = "https://api.resend.com/emails",
        timeout: float = 15.0,
        attempts: int = 3,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._api_key = api_key
        self._from_address = from_address
        self._api_url = api_url
        self._attempts = max(1, attempts)
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ResendMailer"]:
        """None when no API key is configured; email features then report failure."""
        if not settings.resend_api_key:
            return None
        return cls(
            api_key=settings.resend_api_key,
            from_address=settings.resend_from_email,
            api_url=settings.resend_api_url,
            timeout=settings.email_timeout_seconds,
        )

    def send(
        self,
        to: str,
        subject: str,
        html_body: str,
        plain_body: str,
        bcc: Optional[list[str]] = None,
    ) -> bool:
        """
        Send an email through Resend. Returns True on success, False once
        every attempt has failed.
        """
        body: dict = {
            "from": self._from_address,
            "to": [to],
            "subject": subject,
            "html": html_body,
            "text": plain_body,
        }
        if bcc:
            body["bcc"] = bcc

        domain = to.rsplit("@", 1)[-1]
        for attempt in range(self._attempts):
            started = time.monotonic()
            try:
                response = self._client.post(
                    self._api_url,
                    json=body,
                    headers={"Authorization": f"Bearer {self._api_key}"},
                )
                response.raise_for_status()
                app_logging.log_email_send(
                    domain, subject, True, (time.monotonic() - started) * 1000,
                )
                return True
            except httpx.HTTPError as exc:
                app_logging.log_email_send(
                    domain, subject, False, (time.monotonic() - started) * 1000,
                    error=f"{type(exc).__name__}: {exc}",
                )
                logger.error(f"Resend send attempt {attempt + 1} failed: {exc}")
                if attempt < self._attempts - 1:
                    time.sleep(2 ** attempt)

        return False

    def close(self) -> None:
        self._client.close()
