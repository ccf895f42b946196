"""Authentication API router."""

from __future__ import annotations

from typing import Callable, TypeVar

from fastapi import APIRouter, Depends, Request, Response

from uzpharm.api.contracts import (
    ApiErrorResponse,
    AuthSessionResponse,
    MessageResponse,
    OtpIssuedResponse,
    OtpVerifiedResponse,
    RefreshResponse,
    UserEnvelopeResponse,
    UserResponse,
)
from uzpharm.api.errors import ApiError
from uzpharm.auth.authorization import (
    current_user_or_none,
    extract_access_token,
    require_authenticated_user,
)
from uzpharm.auth.models import (
    AuthSession,
    AuthUser,
    LoginRequest,
    LogoutRequest,
    OtpLoginCompleteRequest,
    OtpRequest,
    OtpVerifyRequest,
    PasswordResetCompleteRequest,
    PasswordResetRequest,
    RefreshRequest,
    RegisterRequest,
)
from uzpharm.auth.rate_limiter import LoginRateLimiter
from uzpharm.auth.service import PASSWORD_RESET_MESSAGE, AuthService
from uzpharm.core.config import AuthConfig

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

T = TypeVar("T")

_ERRORS = {
    400: {"model": ApiErrorResponse},
    401: {"model": ApiErrorResponse},
    403: {"model": ApiErrorResponse},
    429: {"model": ApiErrorResponse},
}


def _request_client_ip(request: Request) -> str:
    return (request.client.host if request.client else "") or "unknown"


def create_auth_router(
    service: AuthService, rate_limiter: LoginRateLimiter, config: AuthConfig
) -> APIRouter:
    """Build the ``/api/auth`` router."""
    router = APIRouter(prefix="/api/auth", tags=["auth"], responses=_ERRORS)

    def guard(request: Request) -> str:
        client_ip = _request_client_ip(request)
        rate_limiter.assert_allowed(client_ip)
        return client_ip

    def tracked(client_ip: str, action: Callable[[], T]) -> T:
        """Run an attempt; any API error counts against the client."""
        try:
            return action()
        except ApiError:
            rate_limiter.record_failure(client_ip)
            raise

    def set_cookie(response: Response, name: str, token: str, max_age: int) -> None:
        response.set_cookie(
            name,
            token,
            max_age=max_age,
            httponly=True,
            secure=config.cookie_secure,
            samesite="strict",
            path="/",
        )

    def session_response(
        session: AuthSession, response: Response, message: str
    ) -> AuthSessionResponse:
        set_cookie(
            response,
            ACCESS_COOKIE,
            session.tokens.access_token,
            config.access_token_ttl_seconds,
        )
        set_cookie(
            response,
            REFRESH_COOKIE,
            session.tokens.refresh_token,
            config.refresh_token_ttl_seconds,
        )
        return AuthSessionResponse(
            message=message,
            user=UserResponse.from_user(session.user),
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            expires_in=config.access_token_ttl_seconds,
        )

    @router.post(
        "/register", response_model=UserEnvelopeResponse, dependencies=[Depends(guard)]
    )
    def register(req: RegisterRequest, request: Request) -> UserEnvelopeResponse:
        """Create an account with email and password."""
        user = service.register_with_password(
            email=req.email,
            password=req.password,
            first_name=req.first_name,
            last_name=req.last_name,
            phone=req.phone,
            role=req.role,
            otp_session_id=req.otp_session_id,
            actor=current_user_or_none(request),
        )
        return UserEnvelopeResponse(
            message="Registration successful", user=UserResponse.from_user(user)
        )

    @router.post("/login", response_model=AuthSessionResponse)
    def login(
        req: LoginRequest, response: Response, client_ip: str = Depends(guard)
    ) -> AuthSessionResponse:
        """Authenticate with password and set token cookies."""
        session = tracked(
            client_ip, lambda: service.login_with_password(req.identifier, req.password)
        )
        rate_limiter.record_success(client_ip)
        return session_response(session, response, "Login successful")

    @router.post(
        "/request-otp", response_model=OtpIssuedResponse, dependencies=[Depends(guard)]
    )
    def request_otp(req: OtpRequest) -> OtpIssuedResponse:
        """Send a one-time code to an email or phone number."""
        issued = service.request_otp(req.contact, req.purpose)
        return OtpIssuedResponse(
            message="Verification code sent",
            session_id=issued.session_id,
            expires_at=issued.expires_at,
        )

    @router.post("/otp/verify", response_model=OtpVerifiedResponse)
    def verify_otp(
        req: OtpVerifyRequest, client_ip: str = Depends(guard)
    ) -> OtpVerifiedResponse:
        """Confirm a one-time code."""
        verification = tracked(
            client_ip, lambda: service.verify_otp(req.session_id, req.code)
        )
        return OtpVerifiedResponse(
            message="Verification successful",
            contact=verification.contact,
            channel=verification.channel,
            purpose=verification.purpose,
        )

    @router.post("/login/otp/complete", response_model=AuthSessionResponse)
    def complete_otp_login(
        req: OtpLoginCompleteRequest,
        response: Response,
        client_ip: str = Depends(guard),
    ) -> AuthSessionResponse:
        """Exchange a verified login code for a session."""
        session = tracked(client_ip, lambda: service.complete_otp_login(req.session_id))
        rate_limiter.record_success(client_ip)
        return session_response(session, response, "Login successful")

    @router.post("/refresh", response_model=RefreshResponse)
    def refresh(
        request: Request, response: Response, req: RefreshRequest | None = None
    ) -> RefreshResponse:
        """Mint a new access token from the refresh token."""
        token = (req.refresh_token if req else None) or request.cookies.get(
            REFRESH_COOKIE, ""
        )
        grant = service.refresh(token or "")
        set_cookie(response, ACCESS_COOKIE, grant.access_token, grant.expires_in)
        return RefreshResponse(
            message="Token refreshed successfully",
            access_token=grant.access_token,
            expires_in=grant.expires_in,
        )

    @router.post("/logout", response_model=MessageResponse)
    def logout(
        request: Request, response: Response, req: LogoutRequest | None = None
    ) -> MessageResponse:
        """Revoke the presented tokens and clear cookies."""
        refresh_token = (req.refresh_token if req else None) or request.cookies.get(
            REFRESH_COOKIE, ""
        )
        service.logout(extract_access_token(request), refresh_token)
        response.delete_cookie(ACCESS_COOKIE, path="/")
        response.delete_cookie(REFRESH_COOKIE, path="/")
        return MessageResponse(message="Logout successful")

    @router.get("/me", response_model=UserEnvelopeResponse)
    def me(user: AuthUser = Depends(require_authenticated_user)) -> UserEnvelopeResponse:
        """Return the authenticated user."""
        return UserEnvelopeResponse(user=UserResponse.from_user(user))

    @router.post(
        "/password/reset/request",
        response_model=OtpIssuedResponse,
        dependencies=[Depends(guard)],
    )
    def request_password_reset(req: PasswordResetRequest) -> OtpIssuedResponse:
        """Start a password reset with the same answer for every identifier."""
        issued = service.request_password_reset(req.identifier)
        return OtpIssuedResponse(
            message=PASSWORD_RESET_MESSAGE,
            session_id=issued.session_id,
            expires_at=issued.expires_at,
        )

    @router.post("/password/reset/complete", response_model=MessageResponse)
    def complete_password_reset(
        req: PasswordResetCompleteRequest, client_ip: str = Depends(guard)
    ) -> MessageResponse:
        """Set a new password using a verified reset code."""
        tracked(
            client_ip,
            lambda: service.reset_password(
                req.session_id, req.new_password, req.identifier
            ),
        )
        return MessageResponse(message="Password has been reset")

    return router
