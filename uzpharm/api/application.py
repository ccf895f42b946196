"""FastAPI application factory for the UzPharm auth service."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from uzpharm.api.contracts import HealthResponse
from uzpharm.api.http_setup import register_exception_handlers, register_http_middleware
from uzpharm.auth.middleware import create_auth_middleware
from uzpharm.auth.notifications import (
    CodeSender,
    EmailSender,
    NotificationDispatcher,
    SmsSender,
)
from uzpharm.auth.otp import OtpIssuer
from uzpharm.auth.rate_limiter import LoginRateLimiter
from uzpharm.auth.repository import AuthRepository
from uzpharm.auth.router import create_auth_router
from uzpharm.auth.service import AuthService
from uzpharm.auth.stores import InMemoryOtpSessionStore, InMemoryRevocationStore
from uzpharm.auth.tokens import TokenService
from uzpharm.core.config import AppConfig
from uzpharm.core.maintenance import MaintenanceScheduler
from uzpharm.core.mongo_migrations import apply_mongo_migrations

LOGGER = logging.getLogger(__name__)


def _build_dispatcher(
    config: AppConfig,
    email_sender: CodeSender | None,
    sms_sender: CodeSender | None,
    inline: bool,
) -> NotificationDispatcher:
    notifier = config.notifier
    return NotificationDispatcher(
        email_sender=email_sender
        or EmailSender(
            smtp_host=notifier.smtp_host,
            smtp_port=notifier.smtp_port,
            smtp_user=notifier.smtp_user,
            smtp_password=notifier.smtp_password,
            smtp_use_tls=notifier.smtp_use_tls,
            from_email=notifier.smtp_from_email,
        ),
        sms_sender=sms_sender
        or SmsSender(
            api_key=notifier.sms_api_key,
            api_url=notifier.sms_api_url,
            sender=notifier.sms_sender,
            base_url=notifier.base_url,
        ),
        executor=None
        if inline
        else ThreadPoolExecutor(max_workers=2, thread_name_prefix="otp-notify"),
    )


def create_app(
    config: AppConfig,
    *,
    email_sender: CodeSender | None = None,
    sms_sender: CodeSender | None = None,
    inline_notifications: bool = False,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Wire repository, stores, services and routes into a FastAPI app.

    Services are exposed on ``app.state`` so operators and tests can reach
    the same instances the routes use.
    """
    app = FastAPI(title="UzPharm Auth API", version="1.0.0")
    applied = apply_mongo_migrations(config.storage.mongo_uri, config.storage.mongo_db)
    if applied:
        LOGGER.info("mongo_migrations_applied count=%s", len(applied))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    auth_repo = AuthRepository(
        Path(config.storage.runtime_dir),
        mongo_uri=config.storage.mongo_uri,
        mongo_db=config.storage.mongo_db,
    )
    dispatcher = _build_dispatcher(
        config, email_sender, sms_sender, inline_notifications
    )
    otp_issuer = OtpIssuer(
        store=InMemoryOtpSessionStore(),
        dispatcher=dispatcher,
        config=config.otp,
        clock=clock,
    )
    token_service = TokenService(
        config=config.auth, revocations=InMemoryRevocationStore(), clock=clock
    )
    auth_service = AuthService(auth_repo, token_service, otp_issuer, config.auth)
    rate_limiter = LoginRateLimiter(
        database_path=Path(config.storage.auth_state_sqlite_path),
        max_attempts=config.security.auth_rate_limit_max_attempts,
        window_seconds=config.security.auth_rate_limit_window_seconds,
        clock=clock,
    )
    auth_service.bootstrap_admin_user()
    app.include_router(create_auth_router(auth_service, rate_limiter, config.auth))
    app.middleware("http")(create_auth_middleware(auth_service))

    scheduler = MaintenanceScheduler()
    scheduler.register_job(
        "otp_sweep", otp_issuer.sweep, interval_seconds=config.otp.sweep_interval_seconds
    )
    scheduler.register_job(
        "revocation_trim",
        token_service.trim,
        interval_seconds=config.auth.revocation_sweep_interval_seconds,
    )
    scheduler.register_job(
        "rate_limiter_sweep",
        rate_limiter.sweep,
        interval_seconds=config.security.auth_rate_limit_window_seconds,
    )

    app.state.auth_service = auth_service
    app.state.rate_limiter = rate_limiter
    app.state.maintenance = scheduler

    @app.on_event("startup")
    async def startup_maintenance() -> None:
        await scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_maintenance() -> None:
        await scheduler.stop()
        rate_limiter.close()
        dispatcher.shutdown()

    @app.get("/api/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok")

    return app
