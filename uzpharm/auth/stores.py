"""Storage interfaces for OTP sessions and revoked tokens.

The auth core only talks to these protocols. The in-memory implementations
are the process-local defaults (and the test doubles); a deployment running
several workers can plug in a shared TTL-capable store with the same
per-key atomic operations.
"""

from __future__ import annotations

from collections import OrderedDict
from threading import Lock
from typing import Protocol

from uzpharm.auth.models import OtpSession


class OtpSessionStore(Protocol):
    def get(self, session_id: str) -> OtpSession | None: ...

    def set(self, session: OtpSession) -> None: ...

    def delete(self, session_id: str) -> bool: ...

    def increment_attempts(self, session_id: str) -> OtpSession | None: ...

    def mark_verified(self, session_id: str) -> bool: ...

    def pop(self, session_id: str) -> OtpSession | None: ...

    def sweep(self, now: float) -> int: ...


class RevocationStore(Protocol):
    def add(self, key: str, expires_at: float) -> None: ...

    def contains(self, key: str) -> bool: ...

    def sweep(self, now: float) -> int: ...

    def trim(self, max_entries: int, keep_entries: int) -> int: ...

    def __len__(self) -> int: ...


class InMemoryOtpSessionStore:
    """Dict-backed OTP session store guarded by a single lock."""

    def __init__(self) -> None:
        self._sessions: dict[str, OtpSession] = {}
        self._lock = Lock()

    def get(self, session_id: str) -> OtpSession | None:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy() if session else None

    def set(self, session: OtpSession) -> None:
        with self._lock:
            self._sessions[session.session_id] = session.model_copy()

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def increment_attempts(self, session_id: str) -> OtpSession | None:
        """Atomically bump the attempt counter and return the new state."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            session.attempts += 1
            return session.model_copy()

    def mark_verified(self, session_id: str) -> bool:
        """Flip ``verified`` to true; false if missing or already verified."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.verified:
                return False
            session.verified = True
            return True

    def pop(self, session_id: str) -> OtpSession | None:
        with self._lock:
            return self._sessions.pop(session_id, None)

    def sweep(self, now: float) -> int:
        with self._lock:
            expired = [
                session_id
                for session_id, session in self._sessions.items()
                if session.expires_at <= now
            ]
            for session_id in expired:
                del self._sessions[session_id]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class InMemoryRevocationStore:
    """Insertion-ordered revocation set with per-entry expiry."""

    def __init__(self) -> None:
        self._entries: OrderedDict[str, float] = OrderedDict()
        self._lock = Lock()

    def add(self, key: str, expires_at: float) -> None:
        with self._lock:
            self._entries[key] = float(expires_at)
            self._entries.move_to_end(key)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def sweep(self, now: float) -> int:
        """Drop entries whose token has expired on its own."""
        with self._lock:
            expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def trim(self, max_entries: int, keep_entries: int) -> int:
        """Keep only the ``keep_entries`` most recent entries once over the cap."""
        with self._lock:
            if len(self._entries) <= max_entries:
                return 0
            evicted = 0
            while len(self._entries) > keep_entries:
                self._entries.popitem(last=False)
                evicted += 1
        return evicted

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
