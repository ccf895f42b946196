"""Authentication brute-force protection backed by SQLite runtime state."""

from __future__ import annotations

import math
import sqlite3
import time
from pathlib import Path
from threading import Lock
from typing import Callable

from uzpharm.api.errors import ApiError, ApiErrorCode

_SCHEMA = """
CREATE TABLE IF NOT EXISTS auth_failures (
  client_key TEXT PRIMARY KEY,
  failed_attempts INTEGER NOT NULL,
  first_failed_at REAL NOT NULL,
  last_failed_at REAL NOT NULL
)
"""


class LoginRateLimiter:
    """Failure counter per client address over a sliding window.

    A key is blocked once it reaches ``max_attempts`` failures; the window
    restarts from the most recent failure and the counter is dropped lazily
    when the window is found to have lapsed, or at once on success.
    """

    def __init__(
        self,
        *,
        database_path: Path,
        max_attempts: int,
        window_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize limiter storage and policy parameters."""
        database_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(str(database_path), check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._connection.execute(_SCHEMA)
        self._connection.commit()
        self._lock = Lock()
        self._max_attempts = max(1, int(max_attempts))
        self._window_seconds = max(1, int(window_seconds))
        self._clock = clock

    @staticmethod
    def _key(client_key: str) -> str:
        return (client_key or "").strip() or "unknown"

    def assert_allowed(self, client_key: str) -> None:
        """Raise 429 while the client is blocked."""
        now = self._clock()
        key = self._key(client_key)
        with self._lock:
            row = self._connection.execute(
                "SELECT failed_attempts, last_failed_at FROM auth_failures WHERE client_key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return

            elapsed = now - float(row["last_failed_at"])
            if elapsed > self._window_seconds:
                self._connection.execute(
                    "DELETE FROM auth_failures WHERE client_key = ?", (key,)
                )
                self._connection.commit()
                return

            if int(row["failed_attempts"]) >= self._max_attempts:
                retry_after = max(1, math.ceil(self._window_seconds - elapsed))
                raise ApiError(
                    status_code=429,
                    error_code=ApiErrorCode.TOO_MANY_ATTEMPTS,
                    message=(
                        "Too many failed attempts. "
                        f"Try again in {math.ceil(retry_after / 60)} minute(s)."
                    ),
                    headers={"Retry-After": str(retry_after)},
                )

    def record_success(self, client_key: str) -> None:
        """Reset limiter state after a successful authentication."""
        with self._lock:
            self._connection.execute(
                "DELETE FROM auth_failures WHERE client_key = ?", (self._key(client_key),)
            )
            self._connection.commit()

    def record_failure(self, client_key: str) -> int:
        """Record a failed attempt and return the current count."""
        now = self._clock()
        key = self._key(client_key)
        with self._lock:
            row = self._connection.execute(
                """
                SELECT failed_attempts, first_failed_at, last_failed_at
                FROM auth_failures
                WHERE client_key = ?
                """,
                (key,),
            ).fetchone()

            if row is None or (now - float(row["last_failed_at"])) > self._window_seconds:
                failed_attempts = 1
                first_failed_at = now
            else:
                failed_attempts = int(row["failed_attempts"]) + 1
                first_failed_at = float(row["first_failed_at"])

            self._connection.execute(
                """
                INSERT INTO auth_failures(
                  client_key, failed_attempts, first_failed_at, last_failed_at
                ) VALUES (?, ?, ?, ?)
                ON CONFLICT(client_key) DO UPDATE SET
                  failed_attempts = excluded.failed_attempts,
                  first_failed_at = excluded.first_failed_at,
                  last_failed_at = excluded.last_failed_at
                """,
                (key, failed_attempts, first_failed_at, now),
            )
            self._connection.commit()
        return failed_attempts

    def sweep(self) -> int:
        """Delete counters whose window has lapsed."""
        cutoff = self._clock() - self._window_seconds
        with self._lock:
            cursor = self._connection.execute(
                "DELETE FROM auth_failures WHERE last_failed_at < ?", (cutoff,)
            )
            self._connection.commit()
        return int(cursor.rowcount or 0)

    def close(self) -> None:
        """Close SQLite resources."""
        with self._lock:
            self._connection.close()
