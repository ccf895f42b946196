"""HTTP middleware that resolves the calling user from its access token."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import HTTPException, Request

from uzpharm.auth.authorization import extract_access_token
from uzpharm.auth.service import AuthService

LOGGER = logging.getLogger(__name__)


def create_auth_middleware(service: AuthService) -> Callable:
    """Create middleware attaching ``request.state.user`` (or ``None``).

    The middleware never rejects a request; route dependencies decide
    whether an anonymous or under-privileged caller may proceed.
    """

    async def auth_middleware(request: Request, call_next: Callable):
        """Resolve the caller once per request."""
        request.state.user = None
        token = extract_access_token(request)
        if token:
            try:
                request.state.user = service.current_user(token)
            except HTTPException as exc:
                LOGGER.debug(
                    "access_token_rejected",
                    extra={"path": request.url.path, "status_code": exc.status_code},
                )
        return await call_next(request)

    return auth_middleware
