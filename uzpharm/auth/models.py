"""Pydantic models for authentication domain."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import StrEnum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(StrEnum):
    """Account roles, declared from least to most privileged."""

    CLIENT = "client"
    PHARMACY_SELLER = "pharmacy_seller"
    PHARMACY_OWNER = "pharmacy_owner"
    SUPER_ADMIN = "super_admin"

    @property
    def level(self) -> int:
        """Return the 1-based rank of the role in the hierarchy."""
        return list(Role).index(self) + 1

    def satisfies(self, required: Role) -> bool:
        """Return whether this role meets a check requiring ``required``."""
        return self.level >= required.level

    @classmethod
    def parse(cls, value: object) -> Role | None:
        """Return the role for a raw value, or ``None`` when unknown."""
        try:
            return cls(str(value))
        except ValueError:
            return None

    @classmethod
    def minimum(cls, roles: Iterable[Role]) -> Role:
        """Return the least privileged role of a non-empty collection."""
        return min(roles, key=lambda role: role.level)


class OtpChannel(StrEnum):
    """Out-of-band channel a one-time code is delivered through."""

    EMAIL = "email"
    SMS = "sms"


class OtpPurpose(StrEnum):
    """Privileged action a one-time code session may unlock."""

    LOGIN = "login"
    REGISTER = "register"
    PASSWORD_RESET = "password_reset"


class TokenType(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


class AuthUser(BaseModel):
    """Persisted auth user model."""

    user_id: str
    email: str | None = None
    phone: str | None = None
    first_name: str = ""
    last_name: str = ""
    password_hash: str | None = None
    role: Role = Role.CLIENT
    is_active: bool = True
    email_verified: bool = False
    phone_verified: bool = False
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _require_contact(self) -> AuthUser:
        if not self.email and not self.phone:
            raise ValueError("User requires an email or a phone number")
        return self


class OtpSession(BaseModel):
    """Pending one-time code challenge."""

    session_id: str
    contact: str
    channel: OtpChannel
    purpose: OtpPurpose
    code_digest: str
    created_at: float
    expires_at: float
    attempts: int = 0
    verified: bool = False


class OtpIssued(BaseModel):
    """Handle returned to the caller after a code was issued."""

    session_id: str
    expires_at: float


class OtpVerification(BaseModel):
    """Outcome of a successful code verification."""

    session_id: str
    contact: str
    channel: OtpChannel
    purpose: OtpPurpose


class TokenClaims(BaseModel):
    """Verified token claims."""

    user_id: str
    email: str | None = None
    phone: str | None = None
    role: Role
    token_type: TokenType
    expires_at: int


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str


class AuthSession(BaseModel):
    """Login result: token pair plus the authenticated user."""

    user: AuthUser
    tokens: TokenPair


class AccessTokenGrant(BaseModel):
    access_token: str
    expires_in: int


class _CamelRequest(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class RegisterRequest(_CamelRequest):
    """Password registration payload."""

    email: str = Field(min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    password: str = Field(min_length=8, max_length=72)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    role: Role | None = None
    otp_session_id: str | None = None


class LoginRequest(_CamelRequest):
    """Password login payload; ``email`` and ``phone`` are accepted aliases."""

    identifier: str = Field(
        min_length=3,
        validation_alias=AliasChoices("identifier", "email", "phone"),
    )
    password: str = Field(min_length=1, max_length=256)


class OtpRequest(_CamelRequest):
    """Request a one-time code for an email or a phone number."""

    email: str | None = None
    phone: str | None = None
    purpose: OtpPurpose = OtpPurpose.LOGIN

    @model_validator(mode="after")
    def _require_single_contact(self) -> OtpRequest:
        if bool(self.email) == bool(self.phone):
            raise ValueError("Provide either email or phone")
        if self.purpose == OtpPurpose.PASSWORD_RESET:
            raise ValueError("Use the password reset endpoint for reset codes")
        return self

    @property
    def contact(self) -> str:
        return str(self.email or self.phone)


class OtpVerifyRequest(_CamelRequest):
    session_id: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=16)


class OtpLoginCompleteRequest(_CamelRequest):
    session_id: str = Field(min_length=1)


class RefreshRequest(_CamelRequest):
    """Refresh payload; the refresh cookie is used when the body is empty."""

    refresh_token: str | None = None


class LogoutRequest(_CamelRequest):
    refresh_token: str | None = None


class PasswordResetRequest(_CamelRequest):
    identifier: str = Field(
        min_length=3,
        validation_alias=AliasChoices("identifier", "email", "phone"),
    )


class PasswordResetCompleteRequest(_CamelRequest):
    session_id: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=72)
    identifier: str | None = None
