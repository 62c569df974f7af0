"""
subspace/offline/storage.py - Durable key/record storage for the offline queue
One record per pending submission. SQLiteStore survives process restarts;
MemoryStore is the throwaway variant for tests and ephemeral clients.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Union

Record = dict[str, Any]


class DurableStore(Protocol):
    def get(self, key: str) -> Optional[Record]: ...

    def put(self, key: str, record: Record) -> None: ...

    def delete(self, key: str) -> bool: ...

    def list(self) -> list[Record]: ...

    def count(self) -> int: ...

    def update(
        self,
        key: str,
        fn: Callable[[Record], Record],
    ) -> Optional[Record]: ...


# ──────────────────────────────────────────────────────────────────────────────
# SQLite
# ──────────────────────────────────────────────────────────────────────────────

class SQLiteStore:
    """
    Records serialized as JSON in a single table.
    Every call runs in its own transaction under one lock, so a crash leaves
    either the old or the new record, never half of one.
    """

    _SCHEMA = (
        "CREATE TABLE IF NOT EXISTS pending_submissions ("
        " id TEXT PRIMARY KEY,"
        " record TEXT NOT NULL,"
        " enqueued_at INTEGER NOT NULL DEFAULT 0"
        ")"
    )

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        with self._lock, self._conn:
            self._conn.execute(self._SCHEMA)

    def get(self, key: str) -> Optional[Record]:
        with self._lock:
            row = self._conn.execute(
                "SELECT record FROM pending_submissions WHERE id = ?", (key,)
            ).fetchone()
        return json.loads(row[0]) if row else None

    def put(self, key: str, record: Record) -> None:
        encoded = json.dumps(record)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO pending_submissions (id, record, enqueued_at) "
                "VALUES (?, ?, ?)",
                (key, encoded, int(record.get("enqueued_at", 0))),
            )

    def delete(self, key: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM pending_submissions WHERE id = ?", (key,)
            )
        return cursor.rowcount > 0

    def list(self) -> list[Record]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT record FROM pending_submissions ORDER BY enqueued_at, id"
            ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def count(self) -> int:
        with self._lock:
            (total,) = self._conn.execute(
                "SELECT COUNT(*) FROM pending_submissions"
            ).fetchone()
        return int(total)

    def update(self, key: str, fn: Callable[[Record], Record]) -> Optional[Record]:
        """Read, transform and write back in one transaction. None when absent."""
        with self._lock, self._conn:
            # Take the write lock before reading; other processes may share the file.
            self._conn.execute("BEGIN IMMEDIATE")
            row = self._conn.execute(
                "SELECT record FROM pending_submissions WHERE id = ?", (key,)
            ).fetchone()
            if row is None:
                return None
            updated = fn(json.loads(row[0]))
            self._conn.execute(
                "UPDATE pending_submissions SET record = ?, enqueued_at = ? WHERE id = ?",
                (json.dumps(updated), int(updated.get("enqueued_at", 0)), key),
            )
        return updated

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ──────────────────────────────────────────────────────────────────────────────
# In-memory
# ──────────────────────────────────────────────────────────────────────────────

class MemoryStore:
    def __init__(self) -> None:
        self._records: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Record]:
        with self._lock:
            raw = self._records.get(key)
        return json.loads(raw) if raw is not None else None

    def put(self, key: str, record: Record) -> None:
        # Stored encoded so callers can't mutate a record in place.
        with self._lock:
            self._records[key] = json.dumps(record)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def list(self) -> list[Record]:
        with self._lock:
            records = [json.loads(raw) for raw in self._records.values()]
        return sorted(records, key=lambda r: (r.get("enqueued_at", 0), r.get("id", "")))

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def update(self, key: str, fn: Callable[[Record], Record]) -> Optional[Record]:
        with self._lock:
            raw = self._records.get(key)
            if raw is None:
                return None
            updated = fn(json.loads(raw))
            self._records[key] = json.dumps(updated)
            return updated

    def close(self) -> None:
        return None
