"""Public API response contracts."""

from uzpharm.api.contracts.models import (
    ApiErrorResponse,
    AuthSessionResponse,
    HealthResponse,
    MessageResponse,
    OtpIssuedResponse,
    OtpVerifiedResponse,
    RefreshResponse,
    UserEnvelopeResponse,
    UserResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthSessionResponse",
    "HealthResponse",
    "MessageResponse",
    "OtpIssuedResponse",
    "OtpVerifiedResponse",
    "RefreshResponse",
    "UserEnvelopeResponse",
    "UserResponse",
]
