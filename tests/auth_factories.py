from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path

from uzpharm.auth.models import OtpPurpose
from uzpharm.core.config import (
    AppConfig,
    AuthConfig,
    LoggingConfig,
    NotifierConfig,
    OtpConfig,
    SecurityConfig,
    StorageConfig,
)

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-0123456789abcdef012345678"


@dataclass
class FakeClock:
    now: float = field(default_factory=time.time)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class CapturingSender:
    """Code sender that keeps every delivered code in memory."""

    sent: list[tuple[str, str, OtpPurpose]] = field(default_factory=list)

    def send_code(self, contact: str, code: str, purpose: OtpPurpose) -> None:
        self.sent.append((contact, code, purpose))

    def last_code(self, contact: str | None = None) -> str:
        for sent_contact, code, _purpose in reversed(self.sent):
            if contact is None or sent_contact == contact:
                return code
        raise AssertionError(f"No code delivered to {contact!r}")


def auth_config(**overrides: object) -> AuthConfig:
    values: dict[str, object] = {
        "access_secret": ACCESS_SECRET,
        "refresh_secret": REFRESH_SECRET,
        "access_token_ttl_seconds": 900,
        "refresh_token_ttl_seconds": 604800,
        "issuer": "uzpharm-digital",
        "audience": "uzpharm-users",
        "bcrypt_rounds": 4,
        "registration_requires_otp": True,
        "cookie_secure": False,
        "admin_email": "admin@uzpharm.test",
        "admin_password": "admin-pass-123",
    }
    values.update(overrides)
    return AuthConfig(**values)  # type: ignore[arg-type]


def app_config(tmp_path: Path, **auth_overrides: object) -> AppConfig:
    return AppConfig(
        auth=auth_config(**auth_overrides),
        otp=OtpConfig(),
        notifier=NotifierConfig(),
        storage=StorageConfig(
            runtime_dir=str(tmp_path / "runtime"),
            mongo_uri="",
            mongo_db="uzpharm_test",
            auth_state_sqlite_path=str(tmp_path / "runtime" / "auth_state.db"),
        ),
        logging=LoggingConfig(level="INFO"),
        security=SecurityConfig(
            cors_allowed_origins=["http://localhost:5173"],
            request_max_bytes=64 * 1024,
            auth_rate_limit_max_attempts=5,
            auth_rate_limit_window_seconds=900,
        ),
    )
