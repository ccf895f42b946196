"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class AuthConfig:
    """Token, password and account bootstrap configuration."""

    access_secret: str
    refresh_secret: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    audience: str
    bcrypt_rounds: int
    registration_requires_otp: bool
    cookie_secure: bool
    admin_email: str
    admin_password: str
    revocation_max_entries: int = 10_000
    revocation_keep_entries: int = 5_000
    revocation_sweep_interval_seconds: int = 300


@dataclass(frozen=True)
class OtpConfig:
    """One-time code policy."""

    ttl_seconds: int = 300
    max_attempts: int = 3
    sweep_interval_seconds: int = 300


@dataclass(frozen=True)
class NotifierConfig:
    """SMS gateway and SMTP settings used to deliver one-time codes."""

    sms_api_key: str = ""
    sms_api_url: str = "https://notify.eskiz.uz/api"
    sms_sender: str = "UzPharm"
    base_url: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_from_email: str = ""


@dataclass(frozen=True)
class StorageConfig:
    """Persistence locations for users and auth runtime state."""

    runtime_dir: str
    mongo_uri: str
    mongo_db: str
    auth_state_sqlite_path: str


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    auth_rate_limit_max_attempts: int
    auth_rate_limit_window_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    auth: AuthConfig
    otp: OtpConfig
    notifier: NotifierConfig
    storage: StorageConfig
    logging: LoggingConfig
    security: SecurityConfig

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        access_secret = (
            os.getenv("AUTH_ACCESS_SECRET", "").strip()
            or "dev-only-access-secret-change-before-deploy"
        )
        refresh_secret = (
            os.getenv("AUTH_REFRESH_SECRET", "").strip()
            or "dev-only-refresh-secret-change-before-deploy"
        )
        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "uzpharm-digital").strip() or "uzpharm-digital"
        audience = (
            os.getenv("AUTH_AUDIENCE", "uzpharm-users").strip() or "uzpharm-users"
        )
        bcrypt_rounds = int(os.getenv("AUTH_BCRYPT_ROUNDS", "12"))
        cookie_secure = _env_flag(
            "AUTH_COOKIE_SECURE",
            "1" if os.getenv("APP_ENV", "").strip().lower() == "production" else "0",
        )
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:5173,http://127.0.0.1:5173",
            ).split(",")
            if origin.strip()
        ]

        return AppConfig(
            auth=AuthConfig(
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                audience=audience,
                bcrypt_rounds=bcrypt_rounds,
                registration_requires_otp=_env_flag(
                    "AUTH_REGISTRATION_REQUIRES_OTP", "1"
                ),
                cookie_secure=cookie_secure,
                admin_email=os.getenv("AUTH_ADMIN_EMAIL", "").strip().lower(),
                admin_password=os.getenv("AUTH_ADMIN_PASSWORD", "").strip(),
                revocation_max_entries=int(
                    os.getenv("AUTH_REVOCATION_MAX_ENTRIES", "10000")
                ),
                revocation_keep_entries=int(
                    os.getenv("AUTH_REVOCATION_KEEP_ENTRIES", "5000")
                ),
                revocation_sweep_interval_seconds=int(
                    os.getenv("AUTH_REVOCATION_SWEEP_INTERVAL_SECONDS", "300")
                ),
            ),
            otp=OtpConfig(
                ttl_seconds=int(os.getenv("OTP_TTL_SECONDS", "300")),
                max_attempts=int(os.getenv("OTP_MAX_ATTEMPTS", "3")),
                sweep_interval_seconds=int(
                    os.getenv("OTP_SWEEP_INTERVAL_SECONDS", "300")
                ),
            ),
            notifier=NotifierConfig(
                sms_api_key=os.getenv("SMS_API_KEY", "").strip(),
                sms_api_url=os.getenv("SMS_API_URL", "https://notify.eskiz.uz/api").strip(),
                sms_sender=os.getenv("SMS_SENDER", "UzPharm").strip() or "UzPharm",
                base_url=os.getenv("BASE_URL", "").strip(),
                smtp_host=os.getenv("SMTP_HOST", "").strip(),
                smtp_port=int(os.getenv("SMTP_PORT", "587")),
                smtp_user=os.getenv("SMTP_USER", "").strip(),
                smtp_password=os.getenv("SMTP_PASSWORD", ""),
                smtp_use_tls=_env_flag("SMTP_USE_TLS", "1"),
                smtp_from_email=os.getenv("SMTP_FROM_EMAIL", "").strip(),
            ),
            storage=StorageConfig(
                runtime_dir=os.getenv("RUNTIME_DIR", "runtime").strip() or "runtime",
                mongo_uri=os.getenv("MONGODB_URI", "").strip(),
                mongo_db=os.getenv("MONGODB_DB", "uzpharm").strip() or "uzpharm",
                auth_state_sqlite_path=(
                    os.getenv("AUTH_STATE_SQLITE_PATH", "runtime/auth_state.db").strip()
                    or "runtime/auth_state.db"
                ),
            ),
            logging=LoggingConfig(level=os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=int(os.getenv("REQUEST_MAX_BYTES", str(1024 * 1024))),
                auth_rate_limit_max_attempts=int(
                    os.getenv("AUTH_RATE_LIMIT_MAX_ATTEMPTS", "5")
                ),
                auth_rate_limit_window_seconds=int(
                    os.getenv("AUTH_RATE_LIMIT_WINDOW_SECONDS", "900")
                ),
            ),
        )
