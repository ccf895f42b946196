from __future__ import annotations

import pytest

from uzpharm.core.config import AppConfig


def test_from_env_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "AUTH_ACCESS_TOKEN_TTL_SECONDS",
        "AUTH_REFRESH_TOKEN_TTL_SECONDS",
        "AUTH_BCRYPT_ROUNDS",
        "AUTH_REGISTRATION_REQUIRES_OTP",
        "OTP_TTL_SECONDS",
        "OTP_MAX_ATTEMPTS",
        "APP_ENV",
        "AUTH_COOKIE_SECURE",
        "AUTH_ISSUER",
        "AUTH_AUDIENCE",
        "AUTH_ACCESS_SECRET",
        "AUTH_REFRESH_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.from_env()

    assert config.auth.access_token_ttl_seconds == 900
    assert config.auth.refresh_token_ttl_seconds == 604800
    assert config.auth.issuer == "uzpharm-digital"
    assert config.auth.audience == "uzpharm-users"
    assert config.auth.bcrypt_rounds == 12
    assert config.auth.registration_requires_otp is True
    assert config.auth.cookie_secure is False
    assert config.otp.ttl_seconds == 300
    assert config.otp.max_attempts == 3
    assert config.auth.access_secret != config.auth.refresh_secret


def test_from_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("AUTH_COOKIE_SECURE", raising=False)
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("AUTH_REGISTRATION_REQUIRES_OTP", "0")
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://uzpharm.uz, https://admin.uzpharm.uz")
    monkeypatch.setenv("AUTH_ADMIN_EMAIL", " Admin@UzPharm.uz ")

    config = AppConfig.from_env()

    assert config.auth.cookie_secure is True
    assert config.auth.registration_requires_otp is False
    assert config.auth.admin_email == "admin@uzpharm.uz"
    assert config.security.cors_allowed_origins == [
        "https://uzpharm.uz",
        "https://admin.uzpharm.uz",
    ]
