from __future__ import annotations

import logging
import time

import pytest

from tests.auth_factories import ACCESS_SECRET, FakeClock, auth_config
from uzpharm.auth.models import AuthUser, Role, TokenType
from uzpharm.auth.stores import InMemoryRevocationStore
from uzpharm.auth.tokens import TokenService
from uzpharm.core.security import build_signed_token


def _user(role: Role = Role.CLIENT) -> AuthUser:
    return AuthUser(user_id="u1", email="client@uzpharm.test", role=role)


def _build_tokens(
    clock: FakeClock | None = None, **overrides: object
) -> tuple[TokenService, InMemoryRevocationStore]:
    store = InMemoryRevocationStore()
    service = TokenService(
        config=auth_config(**overrides), revocations=store, clock=clock or FakeClock()
    )
    return service, store


def test_issue_and_verify_token_pair() -> None:
    tokens, _store = _build_tokens()
    pair = tokens.issue(_user(Role.PHARMACY_SELLER))

    access = tokens.verify(pair.access_token, TokenType.ACCESS)
    refresh = tokens.verify(pair.refresh_token, TokenType.REFRESH)

    assert access is not None
    assert access.user_id == "u1"
    assert access.role == Role.PHARMACY_SELLER
    assert access.token_type == TokenType.ACCESS
    assert refresh is not None
    assert refresh.expires_at - access.expires_at == 604800 - 900


def test_tokens_are_not_interchangeable_between_types() -> None:
    tokens, _store = _build_tokens()
    pair = tokens.issue(_user())

    assert tokens.verify(pair.refresh_token, TokenType.ACCESS) is None
    assert tokens.verify(pair.access_token, TokenType.REFRESH) is None


def test_successive_tokens_are_distinct() -> None:
    tokens, _store = _build_tokens()

    assert tokens.issue_access_token(_user()) != tokens.issue_access_token(_user())


def test_verify_rejects_expired_token() -> None:
    past = FakeClock(now=time.time() - 3600)
    tokens, _store = _build_tokens(past)

    token = tokens.issue_access_token(_user())

    assert tokens.verify(token, TokenType.ACCESS) is None


def test_verify_rejects_wrong_type_claim_and_unknown_role() -> None:
    tokens, _store = _build_tokens()
    now = int(time.time())
    base = {
        "iss": "uzpharm-digital",
        "aud": "uzpharm-users",
        "sub": "u1",
        "iat": now,
        "exp": now + 60,
    }

    wrong_type = build_signed_token({**base, "type": "refresh", "role": "client"}, ACCESS_SECRET)
    bad_role = build_signed_token({**base, "type": "access", "role": "root"}, ACCESS_SECRET)

    assert tokens.verify(wrong_type, TokenType.ACCESS) is None
    assert tokens.verify(bad_role, TokenType.ACCESS) is None
    assert tokens.verify("", TokenType.ACCESS) is None


def test_revoked_token_fails_verification() -> None:
    tokens, store = _build_tokens()
    pair = tokens.issue(_user())

    tokens.revoke(pair.refresh_token)
    tokens.revoke(pair.refresh_token)

    assert tokens.is_revoked(pair.refresh_token)
    assert tokens.verify(pair.refresh_token, TokenType.REFRESH) is None
    assert tokens.verify(pair.access_token, TokenType.ACCESS) is not None
    assert len(store) == 1


def test_trim_drops_naturally_expired_entries_first() -> None:
    clock = FakeClock()
    tokens, store = _build_tokens(clock)
    pair = tokens.issue(_user())
    tokens.revoke(pair.access_token)
    tokens.revoke(pair.refresh_token)

    clock.advance(901)
    removed = tokens.trim()

    assert removed == 1
    assert tokens.is_revoked(pair.refresh_token)
    assert not tokens.is_revoked(pair.access_token)


def test_trim_caps_store_and_logs_eviction(caplog: pytest.LogCaptureFixture) -> None:
    tokens, store = _build_tokens(revocation_max_entries=4, revocation_keep_entries=2)
    expires_at = time.time() + 3600
    for index in range(5):
        store.add(f"key-{index}", expires_at)

    with caplog.at_level(logging.WARNING):
        removed = tokens.trim()

    assert removed == 3
    assert len(store) == 2
    assert store.contains("key-4")
    assert not store.contains("key-0")
    assert "revocation_trim_evicted_live_tokens" in caplog.text


def test_revoke_ignores_tokens_this_service_did_not_sign() -> None:
    tokens, store = _build_tokens()
    now = int(time.time())
    foreign = build_signed_token(
        {
            "iss": "uzpharm-digital",
            "aud": "uzpharm-users",
            "sub": "u1",
            "iat": now,
            "exp": now + 60,
            "type": "access",
            "role": "client",
        },
        "some-other-secret-0123456789abcdef012345",
    )

    results = [tokens.revoke(f"junk-{index}") for index in range(50)]
    results.append(tokens.revoke(foreign))
    results.append(tokens.revoke(""))

    assert not any(results)
    assert len(store) == 0


def test_revoke_skips_expired_tokens() -> None:
    past = FakeClock(now=time.time() - 3600)
    tokens, store = _build_tokens(past)
    stale = tokens.issue_access_token(_user())

    assert tokens.revoke(stale) is False
    assert len(store) == 0


def test_junk_flood_cannot_evict_real_revocation() -> None:
    tokens, store = _build_tokens(revocation_max_entries=4, revocation_keep_entries=2)
    pair = tokens.issue(_user())
    tokens.revoke(pair.refresh_token)

    for index in range(20):
        tokens.revoke(f"junk-{index}")
    tokens.trim()

    assert len(store) == 1
    assert tokens.verify(pair.refresh_token, TokenType.REFRESH) is None
