"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from uzpharm.auth.models import AuthUser, OtpChannel, OtpPurpose, Role


class _Envelope(BaseModel):
    """Uniform ``{success, message, ...}`` response envelope."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    message: str = ""


class ApiErrorResponse(_Envelope):
    """Stable error envelope for API responses."""

    success: bool = False
    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    """Health check response payload."""

    status: Literal["ok"]


class UserResponse(BaseModel):
    """Public view of a user record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str | None = None
    phone: str | None = None
    first_name: str = ""
    last_name: str = ""
    role: Role
    is_active: bool
    email_verified: bool
    phone_verified: bool
    last_login_at: datetime | None = None

    @classmethod
    def from_user(cls, user: AuthUser) -> UserResponse:
        return cls(
            id=user.user_id,
            email=user.email,
            phone=user.phone,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
            last_login_at=user.last_login_at,
        )


class UserEnvelopeResponse(_Envelope):
    """Response carrying a single user (register, me)."""

    user: UserResponse


class AuthSessionResponse(_Envelope):
    """Login response; tokens are also set as httpOnly cookies."""

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class OtpIssuedResponse(_Envelope):
    session_id: str
    expires_at: float


class OtpVerifiedResponse(_Envelope):
    contact: str
    channel: OtpChannel
    purpose: OtpPurpose


class RefreshResponse(_Envelope):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class MessageResponse(_Envelope):
    """Plain acknowledgement envelope."""
