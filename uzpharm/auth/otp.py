"""Issuing and verification of short-lived numeric one-time codes."""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Callable

from uzpharm.api.errors import ApiError, ApiErrorCode
from uzpharm.auth.models import (
    OtpChannel,
    OtpIssued,
    OtpPurpose,
    OtpSession,
    OtpVerification,
)
from uzpharm.auth.notifications import NotificationDispatcher
from uzpharm.auth.stores import OtpSessionStore
from uzpharm.core.config import OtpConfig

LOGGER = logging.getLogger(__name__)

CODE_MIN = 100_000
CODE_MAX = 999_999


def generate_code() -> str:
    """Return a uniformly distributed 6-digit code from the OS CSPRNG."""
    return str(CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN + 1))


def _digest_code(session_id: str, code: str) -> str:
    return hashlib.sha256(f"{session_id}:{code}".encode("utf-8")).hexdigest()


class OtpIssuer:
    """Issue, verify and consume one-time code sessions."""

    def __init__(
        self,
        *,
        store: OtpSessionStore,
        dispatcher: NotificationDispatcher,
        config: OtpConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._config = config
        self._clock = clock

    def issue(
        self, contact: str, channel: OtpChannel, purpose: OtpPurpose
    ) -> OtpIssued:
        """Create a session and send its code out-of-band.

        The code itself is never part of the return value.
        """
        now = self._clock()
        session_id = secrets.token_urlsafe(32)
        code = generate_code()
        session = OtpSession(
            session_id=session_id,
            contact=contact,
            channel=channel,
            purpose=purpose,
            code_digest=_digest_code(session_id, code),
            created_at=now,
            expires_at=now + self._config.ttl_seconds,
        )
        self._store.set(session)
        self._dispatcher.dispatch(channel, contact, code, purpose)
        LOGGER.info(
            "otp_issued",
            extra={"session_id": session_id[:8], "channel": str(channel), "purpose": str(purpose)},
        )
        return OtpIssued(session_id=session_id, expires_at=session.expires_at)

    def decoy(
        self, contact: str, channel: OtpChannel, purpose: OtpPurpose
    ) -> OtpIssued:
        """Store a session no code can ever match, and send nothing.

        Verification attempts against it fail, count and expire exactly like
        a real session, so the handle reveals nothing about the contact.
        """
        now = self._clock()
        session_id = secrets.token_urlsafe(32)
        session = OtpSession(
            session_id=session_id,
            contact=contact,
            channel=channel,
            purpose=purpose,
            # codes are digits only, so a hex secret never verifies
            code_digest=_digest_code(session_id, secrets.token_hex(16)),
            created_at=now,
            expires_at=now + self._config.ttl_seconds,
        )
        self._store.set(session)
        return OtpIssued(session_id=session_id, expires_at=session.expires_at)

    def verify(self, session_id: str, code: str) -> OtpVerification:
        """Check a code against its session and mark the session verified."""
        session = self._store.get(session_id)
        if session is None:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.OTP_NOT_FOUND,
                message="Verification session not found",
            )
        if self._clock() >= session.expires_at:
            self._store.delete(session_id)
            raise ApiError(
                status_code=410,
                error_code=ApiErrorCode.OTP_EXPIRED,
                message="Verification code expired",
            )
        if session.verified:
            raise ApiError(
                status_code=409,
                error_code=ApiErrorCode.OTP_ALREADY_USED,
                message="Verification code already used",
            )
        if session.attempts >= self._config.max_attempts:
            self._store.delete(session_id)
            raise self._attempts_exceeded()

        updated = self._store.increment_attempts(session_id)
        if updated is None:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.OTP_NOT_FOUND,
                message="Verification session not found",
            )
        if updated.attempts > self._config.max_attempts:
            self._store.delete(session_id)
            raise self._attempts_exceeded()

        candidate = (code or "").strip()
        if not candidate.isdigit() or not hmac.compare_digest(
            _digest_code(session_id, candidate), updated.code_digest
        ):
            remaining = max(0, self._config.max_attempts - updated.attempts)
            raise ApiError(
                status_code=401,
                error_code=ApiErrorCode.OTP_INVALID_CODE,
                message=f"Invalid verification code. {remaining} attempt(s) left.",
            )

        if not self._store.mark_verified(session_id):
            raise ApiError(
                status_code=409,
                error_code=ApiErrorCode.OTP_ALREADY_USED,
                message="Verification code already used",
            )
        LOGGER.info(
            "otp_verified",
            extra={"session_id": session_id[:8], "purpose": str(updated.purpose)},
        )
        return OtpVerification(
            session_id=session_id,
            contact=updated.contact,
            channel=updated.channel,
            purpose=updated.purpose,
        )

    def consume(
        self, session_id: str, purpose: OtpPurpose, contact: str | None = None
    ) -> OtpSession:
        """Remove and return a verified session bound to ``purpose``.

        Raises ``OTP_NOT_VERIFIED`` for unknown, unverified, expired or
        mismatched sessions. Deletion is the authoritative consumption, so a
        concurrent second caller finds nothing to pop.
        """
        session = self._store.get(session_id) if session_id else None
        if (
            session is None
            or not session.verified
            or session.purpose != purpose
            or (contact is not None and session.contact != contact)
        ):
            raise self._not_verified()
        if self._clock() >= session.expires_at:
            self._store.delete(session_id)
            raise self._not_verified()
        consumed = self._store.pop(session_id)
        if consumed is None or not consumed.verified:
            raise self._not_verified()
        return consumed

    def peek_verified(self, session_id: str, purpose: OtpPurpose) -> OtpSession:
        """Return a verified, unexpired session without consuming it."""
        session = self._store.get(session_id) if session_id else None
        if (
            session is None
            or not session.verified
            or session.purpose != purpose
            or self._clock() >= session.expires_at
        ):
            raise self._not_verified()
        return session

    def sweep(self) -> int:
        """Delete every expired session."""
        removed = self._store.sweep(self._clock())
        if removed:
            LOGGER.info("otp_sweep", extra={"removed": removed})
        return removed

    @staticmethod
    def _attempts_exceeded() -> ApiError:
        return ApiError(
            status_code=429,
            error_code=ApiErrorCode.OTP_ATTEMPTS_EXCEEDED,
            message="Too many invalid codes. Request a new code.",
        )

    @staticmethod
    def _not_verified() -> ApiError:
        return ApiError(
            status_code=401,
            error_code=ApiErrorCode.OTP_NOT_VERIFIED,
            message="Verification code has not been confirmed",
        )
