from __future__ import annotations

import time

import pytest

from uzpharm.core.security import (
    build_signed_token,
    decode_signed_token,
    digest_token,
    hash_password,
    verify_password,
)

SECRET = "security-test-secret-0123456789abcdef0123"


def _claims(**overrides: object) -> dict[str, object]:
    now = int(time.time())
    claims: dict[str, object] = {
        "iss": "uzpharm-digital",
        "aud": "uzpharm-users",
        "sub": "u1",
        "iat": now,
        "exp": now + 60,
    }
    claims.update(overrides)
    return claims


def test_hash_password_round_trip() -> None:
    stored = hash_password("correct horse", rounds=4)

    assert stored.startswith("$2")
    assert verify_password("correct horse", stored) is True
    assert verify_password("wrong horse", stored) is False


def test_hash_password_rejects_more_than_72_bytes() -> None:
    with pytest.raises(ValueError):
        hash_password("ж" * 40, rounds=4)


def test_verify_password_handles_missing_or_malformed_hash() -> None:
    assert verify_password("anything", "") is False
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_decode_signed_token_checks_issuer_and_audience() -> None:
    token = build_signed_token(_claims(), SECRET)

    payload = decode_signed_token(
        token, SECRET, issuer="uzpharm-digital", audience="uzpharm-users"
    )
    assert payload["sub"] == "u1"

    with pytest.raises(ValueError):
        decode_signed_token(token, SECRET, issuer="other", audience="uzpharm-users")
    with pytest.raises(ValueError):
        decode_signed_token(token, SECRET, issuer="uzpharm-digital", audience="other")


def test_decode_signed_token_rejects_expired_and_foreign_signature() -> None:
    expired = build_signed_token(_claims(iat=1_000, exp=2_000), SECRET)
    foreign = build_signed_token(_claims(), "another-secret-0123456789abcdef01234")

    with pytest.raises(ValueError, match="expired"):
        decode_signed_token(
            expired, SECRET, issuer="uzpharm-digital", audience="uzpharm-users"
        )
    with pytest.raises(ValueError):
        decode_signed_token(
            foreign, SECRET, issuer="uzpharm-digital", audience="uzpharm-users"
        )


def test_digest_token_is_stable_sha256() -> None:
    token = build_signed_token(_claims(exp=4_000_000_000), SECRET)

    assert digest_token(token) == digest_token(token)
    assert len(digest_token(token)) == 64
