"""Role-based authorization over the ordered role hierarchy."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Callable

from fastapi import Request

from uzpharm.api.errors import ApiError, ApiErrorCode
from uzpharm.auth.models import AuthUser, Role


def extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from Authorization header."""
    parts = (authorization or "").strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def extract_access_token(request: Request) -> str:
    """Return the access token from the cookie, falling back to the header."""
    cookie_token = request.cookies.get("accessToken", "").strip()
    if cookie_token:
        return cookie_token
    return extract_bearer_token(request.headers.get("authorization"))


def has_permission(user_role: Role, required_roles: Iterable[Role]) -> bool:
    """Grant access when the role meets the least privileged required role."""
    roles = list(required_roles)
    if not roles:
        return True
    return user_role.satisfies(Role.minimum(roles))


def authorize(user: AuthUser | None, required_roles: Iterable[Role]) -> AuthUser:
    """Return ``user`` if allowed, else raise 401 or 403."""
    if user is None:
        raise ApiError(
            status_code=401,
            error_code=ApiErrorCode.AUTHENTICATION_REQUIRED,
            message="Authentication required",
        )
    if not has_permission(user.role, required_roles):
        raise ApiError(
            status_code=403,
            error_code=ApiErrorCode.INSUFFICIENT_PERMISSIONS,
            message="Insufficient permissions",
        )
    return user


def current_user_or_none(request: Request) -> AuthUser | None:
    """Return the caller resolved by the identity middleware, if any."""
    return getattr(request.state, "user", None)


def require_authenticated_user(request: Request) -> AuthUser:
    """FastAPI dependency: any authenticated active user."""
    return authorize(current_user_or_none(request), [])


def require_roles(*roles: Role) -> Callable[[Request], AuthUser]:
    """Build a FastAPI dependency enforcing the role hierarchy."""
    required = [Role(role) for role in roles]

    def dependency(request: Request) -> AuthUser:
        return authorize(current_user_or_none(request), required)

    return dependency


require_client = require_roles(Role.CLIENT)
require_seller = require_roles(Role.PHARMACY_SELLER)
require_owner = require_roles(Role.PHARMACY_OWNER)
require_admin = require_roles(Role.SUPER_ADMIN)
