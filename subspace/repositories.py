"""
subspace/repositories.py - Storage contracts for submissions and accounts
Route handlers only see the FormRepository and SuperintendentDirectory
protocols. The in-memory implementations back development and tests; a
deployment plugs a database-backed implementation in through create_app.
"""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from subspace.core.passwords import hash_password
from subspace.models import StoredSubmission, Superintendent


def normalize_email(email: str) -> str:
    """Addresses are matched case-insensitively throughout."""
    return email.strip().lower()


class FormRepository(Protocol):
    def create(
        self,
        form_type: str,
        job_number: str,
        submitted_by: str,
        submitted_by_email: str,
        submitted_by_company: str,
        data: dict[str, Any],
        superintendent_email: Optional[str] = None,
    ) -> StoredSubmission: ...

    def get(self, submission_id: int) -> Optional[StoredSubmission]: ...

    def list(self, superintendent_email: Optional[str] = None) -> list[StoredSubmission]: ...

    def set_reviewed(
        self,
        submission_id: int,
        reviewed: bool,
        reviewer: Optional[str],
    ) -> Optional[StoredSubmission]: ...


class InMemoryFormRepository:
    def __init__(self) -> None:
        self._rows: dict[int, StoredSubmission] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def create(
        self,
        form_type: str,
        job_number: str,
        submitted_by: str,
        submitted_by_email: str,
        submitted_by_company: str,
        data: dict[str, Any],
        superintendent_email: Optional[str] = None,
    ) -> StoredSubmission:
        with self._lock:
            row = StoredSubmission(
                id=self._next_id,
                form_type=form_type,
                job_number=job_number,
                submitted_by=submitted_by,
                submitted_by_email=submitted_by_email,
                submitted_by_company=submitted_by_company,
                superintendent_email=normalize_email(superintendent_email) if superintendent_email else None,
                data=data,
            )
            self._rows[row.id] = row
            self._next_id += 1
            return row

    def get(self, submission_id: int) -> Optional[StoredSubmission]:
        with self._lock:
            return self._rows.get(submission_id)

    def list(self, superintendent_email: Optional[str] = None) -> list[StoredSubmission]:
        """Newest first, optionally restricted to one superintendent."""
        with self._lock:
            rows = list(self._rows.values())
        if superintendent_email is not None:
            wanted = normalize_email(superintendent_email)
            rows = [r for r in rows if r.superintendent_email == wanted]
        return sorted(rows, key=lambda r: (r.submitted_at, r.id), reverse=True)

    def set_reviewed(
        self,
        submission_id: int,
        reviewed: bool,
        reviewer: Optional[str],
    ) -> Optional[StoredSubmission]:
        with self._lock:
            row = self._rows.get(submission_id)
            if row is None:
                return None
            updated = row.model_copy(update={
                "reviewed": reviewed,
                "reviewed_at": datetime.now(timezone.utc) if reviewed else None,
                "reviewed_by": reviewer if reviewed else None,
            })
            self._rows[submission_id] = updated
            return updated


class InMemorySuperintendentDirectory:
    """Superintendent accounts keyed by lowercase email."""

    def __init__(self) -> None:
        self._accounts: dict[str, Superintendent] = {}
        self._lock = threading.Lock()

    def add(self, email: str, name: str, password: str, rounds: Optional[int] = None) -> Superintendent:
        with self._lock:
            account = Superintendent(
                id=len(self._accounts) + 1,
                email=normalize_email(email),
                name=name,
                password_hash=hash_password(password, rounds=rounds),
            )
            self._accounts[account.email] = account
            return account

    def set_password(self, email: str, password: str, rounds: Optional[int] = None) -> bool:
        """Replace the stored hash wholesale. False for unknown accounts."""
        key = normalize_email(email)
        with self._lock:
            account = self._accounts.get(key)
            if account is None:
                return False
            self._accounts[key] = account.model_copy(
                update={"password_hash": hash_password(password, rounds=rounds)}
            )
            return True

    def find_by_email(self, email: str) -> Optional[Superintendent]:
        with self._lock:
            return self._accounts.get(normalize_email(email))
