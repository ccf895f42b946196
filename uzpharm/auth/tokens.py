"""Signing, verification and revocation of access/refresh tokens."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable

from uzpharm.auth.models import AuthUser, Role, TokenClaims, TokenPair, TokenType
from uzpharm.auth.stores import RevocationStore
from uzpharm.core.config import AuthConfig
from uzpharm.core.security import (
    build_signed_token,
    decode_signed_token,
    digest_token,
)

LOGGER = logging.getLogger(__name__)


class TokenService:
    """JWT issuer with one secret per token type and a revocation store."""

    def __init__(
        self,
        *,
        config: AuthConfig,
        revocations: RevocationStore,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._revocations = revocations
        self._clock = clock

    @property
    def access_token_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self._config.refresh_token_ttl_seconds

    def issue(self, user: AuthUser) -> TokenPair:
        """Mint a fresh access/refresh pair for ``user``."""
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self._mint(user, TokenType.REFRESH),
        )

    def issue_access_token(self, user: AuthUser) -> str:
        return self._mint(user, TokenType.ACCESS)

    def verify(self, token: str, expected_type: TokenType) -> TokenClaims | None:
        """Return claims only if every check passes, otherwise ``None``."""
        if not token or self.is_revoked(token):
            return None
        try:
            payload = decode_signed_token(
                token,
                self._secret_for(expected_type),
                issuer=self._config.issuer,
                audience=self._config.audience,
            )
        except ValueError:
            return None

        if str(payload.get("type") or "") != expected_type.value:
            return None
        role = Role.parse(payload.get("role"))
        if role is None:
            return None
        return TokenClaims(
            user_id=str(payload["sub"]),
            email=payload.get("email"),
            phone=payload.get("phone"),
            role=role,
            token_type=expected_type,
            expires_at=int(payload["exp"]),
        )

    def revoke(self, token: str) -> bool:
        """Blacklist a token until its own expiry.

        Only tokens this service signed and that are still live are stored;
        anything else could never pass :meth:`verify` anyway.
        """
        payload = self._decode_any(token) if token else None
        if payload is None:
            return False
        self._revocations.add(digest_token(token), int(payload["exp"]))
        return True

    def is_revoked(self, token: str) -> bool:
        return self._revocations.contains(digest_token(token))

    def trim(self) -> int:
        """Drop naturally expired entries, then enforce the size cap.

        Evicting by size can forget a token that is still valid; that case is
        logged so an operator can size the cap or move to a TTL store.
        """
        removed = self._revocations.sweep(self._clock())
        evicted = self._revocations.trim(
            self._config.revocation_max_entries,
            self._config.revocation_keep_entries,
        )
        if evicted:
            LOGGER.warning(
                "revocation_trim_evicted_live_tokens",
                extra={"removed": evicted},
            )
        return removed + evicted

    def _mint(self, user: AuthUser, token_type: TokenType) -> str:
        now = int(self._clock())
        ttl = (
            self._config.access_token_ttl_seconds
            if token_type == TokenType.ACCESS
            else self._config.refresh_token_ttl_seconds
        )
        payload: dict[str, Any] = {
            "iss": self._config.issuer,
            "aud": self._config.audience,
            "sub": user.user_id,
            "email": user.email,
            "phone": user.phone,
            "role": user.role.value,
            "type": token_type.value,
            "iat": now,
            "exp": now + ttl,
            "jti": uuid.uuid4().hex,
        }
        return build_signed_token(payload, self._secret_for(token_type))

    def _decode_any(self, token: str) -> dict[str, Any] | None:
        for token_type in (TokenType.ACCESS, TokenType.REFRESH):
            try:
                return decode_signed_token(
                    token,
                    self._secret_for(token_type),
                    issuer=self._config.issuer,
                    audience=self._config.audience,
                )
            except ValueError:
                continue
        return None

    def _secret_for(self, token_type: TokenType) -> str:
        if token_type == TokenType.ACCESS:
            return self._config.access_secret
        return self._config.refresh_secret
