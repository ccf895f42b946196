"""Authentication service for registration, login, refresh and password reset."""

from __future__ import annotations

import logging
import uuid
from functools import cached_property

from uzpharm.api.errors import ApiError, ApiErrorCode
from uzpharm.auth.contacts import normalize_email, normalize_phone, resolve_contact
from uzpharm.auth.models import (
    AccessTokenGrant,
    AuthSession,
    AuthUser,
    OtpChannel,
    OtpIssued,
    OtpPurpose,
    OtpVerification,
    Role,
    TokenType,
    utcnow,
)
from uzpharm.auth.otp import OtpIssuer
from uzpharm.auth.repository import AuthRepository
from uzpharm.auth.tokens import TokenService
from uzpharm.core.config import AuthConfig
from uzpharm.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email/phone or password"
PASSWORD_RESET_MESSAGE = "If the account exists, a verification code has been sent"


class AuthService:
    """Account lifecycle facade over users, one-time codes and tokens."""

    def __init__(
        self,
        repo: AuthRepository,
        tokens: TokenService,
        otp: OtpIssuer,
        config: AuthConfig,
    ) -> None:
        """Initialize service dependencies."""
        self._repo = repo
        self._tokens = tokens
        self._otp = otp
        self._config = config

    @property
    def tokens(self) -> TokenService:
        return self._tokens

    @property
    def otp(self) -> OtpIssuer:
        return self._otp

    @cached_property
    def _dummy_hash(self) -> str:
        return hash_password(uuid.uuid4().hex, rounds=self._config.bcrypt_rounds)

    def bootstrap_admin_user(self) -> None:
        """Ensure the configured super admin exists."""
        if not self._config.admin_email or not self._config.admin_password:
            return
        if self._repo.get_user_by_email(self._config.admin_email) is not None:
            return

        self._repo.upsert_user(
            AuthUser(
                user_id=uuid.uuid4().hex,
                email=self._config.admin_email,
                first_name="Super",
                last_name="Admin",
                password_hash=self._hash(self._config.admin_password),
                role=Role.SUPER_ADMIN,
                is_active=True,
                email_verified=True,
            )
        )
        LOGGER.info("admin_bootstrapped")

    def register_with_password(
        self,
        *,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: str | None = None,
        role: Role | None = None,
        otp_session_id: str | None = None,
        actor: AuthUser | None = None,
    ) -> AuthUser:
        """Create an active account; no tokens are issued.

        Unless a staff actor (``pharmacy_seller`` or above) creates the
        account, a verified ``register`` code session for the same email or
        phone is needed when ``registration_requires_otp`` is on. Roles above
        ``client`` can only be granted by an actor who holds them.
        """
        email_key = normalize_email(email)
        phone_key = normalize_phone(phone) if phone else ""
        requested_role = role or Role.CLIENT

        if requested_role != Role.CLIENT and (
            actor is None or not actor.role.satisfies(requested_role)
        ):
            raise ApiError(
                status_code=403,
                error_code=ApiErrorCode.INSUFFICIENT_PERMISSIONS,
                message="Insufficient permissions to assign this role",
            )

        if self._repo.get_user_by_email(email_key) is not None or (
            phone_key and self._repo.get_user_by_phone(phone_key) is not None
        ):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.DUPLICATE_ACCOUNT,
                message="An account with this email or phone already exists",
            )

        staff_actor = actor is not None and actor.role.satisfies(Role.PHARMACY_SELLER)
        gated = self._config.registration_requires_otp and not staff_actor
        verified_channel: OtpChannel | None = None
        if gated:
            if not otp_session_id:
                raise ApiError(
                    status_code=400,
                    error_code=ApiErrorCode.OTP_REQUIRED,
                    message="Verify your email or phone before registering",
                )
            pending = self._otp.peek_verified(otp_session_id, OtpPurpose.REGISTER)
            if pending.contact not in {email_key, phone_key}:
                raise ApiError(
                    status_code=401,
                    error_code=ApiErrorCode.OTP_NOT_VERIFIED,
                    message="Verification code has not been confirmed",
                )
            verified_channel = pending.channel

        password_hash = self._hash(password)
        if gated:
            consumed = self._otp.consume(otp_session_id or "", OtpPurpose.REGISTER)
            verified_channel = consumed.channel

        user = self._repo.upsert_user(
            AuthUser(
                user_id=uuid.uuid4().hex,
                email=email_key,
                phone=phone_key or None,
                first_name=first_name.strip(),
                last_name=last_name.strip(),
                password_hash=password_hash,
                role=requested_role,
                is_active=True,
                email_verified=verified_channel == OtpChannel.EMAIL,
                phone_verified=verified_channel == OtpChannel.SMS,
            )
        )
        LOGGER.info("user_registered", extra={"user_id": user.user_id})
        return user

    def login_with_password(self, identifier: str, password: str) -> AuthSession:
        """Authenticate by email or phone and password."""
        user = self._repo.get_user_by_email_or_phone(identifier.strip())
        if user is None or not user.password_hash:
            # keep response time independent of account existence
            verify_password(password, self._dummy_hash)
            raise self._invalid_credentials()
        if not verify_password(password, user.password_hash):
            raise self._invalid_credentials()
        if not user.is_active:
            raise self._account_disabled()
        return self._start_session(user)

    def request_otp(self, contact: str, purpose: OtpPurpose) -> OtpIssued:
        """Send a code to an email or phone for login or registration."""
        if purpose == OtpPurpose.PASSWORD_RESET:
            return self.request_password_reset(contact)
        channel, normalized = resolve_contact(contact)
        if not normalized:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message="A valid email or phone number is required",
            )
        return self._otp.issue(normalized, channel, purpose)

    def verify_otp(self, session_id: str, code: str) -> OtpVerification:
        return self._otp.verify(session_id, code)

    def complete_otp_login(self, session_id: str) -> AuthSession:
        """Exchange a verified ``login`` code session for a token pair."""
        session = self._otp.consume(session_id, OtpPurpose.LOGIN)
        user = self._repo.get_user_by_email_or_phone(session.contact)
        if user is None:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.USER_NOT_FOUND,
                message="No account is registered for this contact",
            )
        if not user.is_active:
            raise self._account_disabled()

        if session.channel == OtpChannel.EMAIL and not user.email_verified:
            user = self._repo.upsert_user(user.model_copy(update={"email_verified": True}))
        elif session.channel == OtpChannel.SMS and not user.phone_verified:
            user = self._repo.upsert_user(user.model_copy(update={"phone_verified": True}))
        return self._start_session(user)

    def refresh(self, refresh_token: str) -> AccessTokenGrant:
        """Mint a new access token; the refresh token itself is not rotated."""
        claims = self._tokens.verify(refresh_token, TokenType.REFRESH)
        if claims is None:
            raise self._invalid_token("Invalid refresh token")
        user = self._repo.get_user_by_id(claims.user_id)
        if user is None:
            raise self._invalid_token("Invalid refresh token")
        if not user.is_active:
            raise self._account_disabled()
        return AccessTokenGrant(
            access_token=self._tokens.issue_access_token(user),
            expires_in=self._tokens.access_token_ttl_seconds,
        )

    def logout(self, access_token: str | None, refresh_token: str | None) -> None:
        """Revoke whichever tokens were presented; safe to repeat."""
        for token in (access_token, refresh_token):
            if token:
                self._tokens.revoke(token)

    def current_user(self, access_token: str) -> AuthUser:
        """Resolve the active user behind an access token."""
        claims = self._tokens.verify(access_token, TokenType.ACCESS)
        if claims is None:
            raise self._invalid_token("Invalid or expired token")
        user = self._repo.get_user_by_id(claims.user_id)
        if user is None or not user.is_active:
            raise self._invalid_token("User account not found or inactive")
        return user

    def request_password_reset(self, identifier: str) -> OtpIssued:
        """Start a reset; unknown accounts get an identical-looking decoy."""
        channel, contact = resolve_contact(identifier)
        user = self._repo.get_user_by_email_or_phone(contact) if contact else None
        if user is None or not user.is_active:
            LOGGER.info("password_reset_requested_unknown_account")
            return self._otp.decoy(contact, channel, OtpPurpose.PASSWORD_RESET)
        return self._otp.issue(contact, channel, OtpPurpose.PASSWORD_RESET)

    def reset_password(
        self, session_id: str, new_password: str, identifier: str | None = None
    ) -> None:
        """Set a new password after a verified ``password_reset`` code."""
        contact = resolve_contact(identifier)[1] if identifier else None
        password_hash = self._hash(new_password)
        session = self._otp.consume(session_id, OtpPurpose.PASSWORD_RESET, contact=contact)
        user = self._repo.get_user_by_email_or_phone(session.contact)
        if user is None:
            LOGGER.warning("password_reset_account_vanished")
            return
        self._repo.update_password(user.user_id, password_hash)
        LOGGER.info("password_reset_completed", extra={"user_id": user.user_id})

    def _start_session(self, user: AuthUser) -> AuthSession:
        now = utcnow()
        self._repo.update_last_login(user.user_id, now)
        user = user.model_copy(update={"last_login_at": now})
        LOGGER.info("login_succeeded", extra={"user_id": user.user_id})
        return AuthSession(user=user, tokens=self._tokens.issue(user))

    def _hash(self, password: str) -> str:
        try:
            return hash_password(password, rounds=self._config.bcrypt_rounds)
        except ValueError as exc:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.VALIDATION_ERROR,
                message=str(exc),
            ) from exc

    @staticmethod
    def _invalid_credentials() -> ApiError:
        return ApiError(
            status_code=401,
            error_code=ApiErrorCode.INVALID_CREDENTIALS,
            message=INVALID_CREDENTIALS_MESSAGE,
        )

    @staticmethod
    def _account_disabled() -> ApiError:
        return ApiError(
            status_code=403,
            error_code=ApiErrorCode.ACCOUNT_DISABLED,
            message="Account is deactivated",
        )

    @staticmethod
    def _invalid_token(message: str) -> ApiError:
        return ApiError(
            status_code=401,
            error_code=ApiErrorCode.INVALID_TOKEN,
            message=message,
        )
