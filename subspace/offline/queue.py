"""
subspace/offline/queue.py - Offline-first form submission queue
A field device that loses connectivity keeps its submissions here and replays
them to POST /api/forms/submit once the network is back. Entries leave the
queue only through a successful (2xx) delivery.
"""
from __future__ import annotations

import secrets
import threading
import time
from typing import Any, Callable, Optional

import httpx
from loguru import logger

from subspace.config import Settings, get_settings
from subspace.core.logging import log_queue_sync
from subspace.models import PendingSubmission, SubmitOutcome, SyncResult
from subspace.offline.storage import DurableStore, SQLiteStore

SuccessCallback = Callable[[str], None]
ErrorCallback = Callable[[str, Exception], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


class SubmissionRejected(Exception):
    """The server answered a replay with a non-2xx status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"Server responded with HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class OfflineSubmissionQueue:
    def __init__(
        self,
        store: DurableStore,
        client: httpx.Client,
        endpoint: str,
        timeout: float = 15.0,
        max_retries: Optional[int] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._client = client
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_retries = max_retries
        self._clock_ms = clock_ms
        self._drain_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ) -> "OfflineSubmissionQueue":
        settings = settings or get_settings()
        return cls(
            store=SQLiteStore(settings.offline_queue_path),
            client=client or httpx.Client(),
            endpoint=settings.offline_submit_url,
            timeout=settings.offline_request_timeout,
            max_retries=settings.offline_max_retries,
        )

    # ── Queue bookkeeping ─────────────────────────────────────────────────────

    def _new_id(self, now_ms: int) -> str:
        return f"submission_{now_ms}_{secrets.token_hex(5)}"

    def enqueue(self, payload: Any) -> str:
        """Persist a submission. The id is only returned once the write is durable."""
        now = self._clock_ms()
        entry = PendingSubmission(id=self._new_id(now), payload=payload, enqueued_at=now)
        self._store.put(entry.id, entry.model_dump(mode="json"))
        logger.info(f"Submission {entry.id} queued for later delivery")
        return entry.id

    def list_pending(self) -> list[PendingSubmission]:
        """All entries, held ones included, oldest first."""
        entries = [PendingSubmission.model_validate(r) for r in self._store.list()]
        return sorted(entries, key=lambda e: (e.enqueued_at, e.id))

    def remove(self, submission_id: str) -> bool:
        return self._store.delete(submission_id)

    def increment_retry(self, submission_id: str, error: Optional[str] = None) -> Optional[PendingSubmission]:
        def _bump(record: dict[str, Any]) -> dict[str, Any]:
            record["retry_count"] = int(record.get("retry_count", 0)) + 1
            record["last_error"] = error
            return record

        updated = self._store.update(submission_id, _bump)
        return PendingSubmission.model_validate(updated) if updated is not None else None

    def count(self) -> int:
        return self._store.count()

    def is_held(self, entry: PendingSubmission) -> bool:
        return self.max_retries is not None and entry.retry_count >= self.max_retries

    # ── Delivery ──────────────────────────────────────────────────────────────

    def _post(self, payload: Any) -> httpx.Response:
        return self._client.post(self.endpoint, json=payload, timeout=self.timeout)

    def drain_and_sync(
        self,
        on_success: Optional[SuccessCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> SyncResult:
        """
        Replay every pending entry once, in enqueue order.
        Entries enqueued while a pass runs wait for the next pass. Concurrent
        callers are serialized, so no entry is posted twice by one drain.
        """
        with self._drain_lock:
            start = time.perf_counter()
            result = SyncResult()

            for entry in self.list_pending():
                if self.is_held(entry):
                    result.held += 1
                    continue

                error: Optional[Exception] = None
                try:
                    response = self._post(entry.payload)
                    if not response.is_success:
                        error = SubmissionRejected(response.status_code, response.text[:500])
                except (httpx.HTTPError, httpx.InvalidURL) as exc:
                    error = exc

                if error is None:
                    self.remove(entry.id)
                    result.succeeded += 1
                    _notify(on_success, entry.id)
                else:
                    self.increment_retry(entry.id, str(error))
                    result.failed += 1
                    logger.warning(f"Replay of {entry.id} failed: {error}")
                    _notify(on_error, entry.id, error)

            log_queue_sync(
                result.succeeded,
                result.failed,
                result.held,
                self.count(),
                (time.perf_counter() - start) * 1000,
            )
            return result

    def submit_or_queue(self, payload: Any) -> SubmitOutcome:
        """
        Try a live submission first. Only an unreachable server queues the
        payload; a server that answers with an error is reported to the caller.
        """
        try:
            response = self._post(payload)
        except httpx.TransportError as exc:
            logger.info(f"Submit endpoint unreachable ({type(exc).__name__}); queueing")
            return SubmitOutcome(delivered=False, queued=True, submission_id=self.enqueue(payload))

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return SubmitOutcome(
            delivered=response.is_success,
            status_code=response.status_code,
            response=body,
        )

    def close(self) -> None:
        self._client.close()
        close = getattr(self._store, "close", None)
        if close is not None:
            close()


def _notify(callback: Optional[Callable[..., None]], *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception as exc:
        logger.warning(f"Offline queue callback raised (ignored): {exc}")
