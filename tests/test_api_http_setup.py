from __future__ import annotations

import asyncio
import inspect
import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Coroutine, cast

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.requests import Request
from starlette.responses import Response

from tests.auth_factories import app_config
from uzpharm.api.errors import ApiError, ApiErrorCode
from uzpharm.api.http_setup import register_exception_handlers, register_http_middleware

LOGGER = logging.getLogger(__name__)


def _build_app(tmp_path: Path) -> FastAPI:
    config = app_config(tmp_path)
    config = replace(config, security=replace(config.security, request_max_bytes=8))
    app = FastAPI()
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)
    return app


def _request(path: str, method: str = "GET", headers: list[tuple[bytes, bytes]] | None = None) -> Request:
    scope: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": b"",
        "root_path": "",
        "headers": headers or [],
        "client": ("127.0.0.1", 1234),
        "server": ("testserver", 80),
    }

    async def receive() -> dict[str, Any]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return Request(scope, receive)


def _dispatch_by_name(app: FastAPI, name: str):
    for middleware in app.user_middleware:
        dispatch = middleware.kwargs.get("dispatch")
        if callable(dispatch) and getattr(dispatch, "__name__", "") == name:
            return dispatch
    raise AssertionError(f"Dispatch {name!r} not found")


def _resolve_response(result: Response | Awaitable[Response]) -> Response:
    if inspect.iscoroutine(result):
        return asyncio.run(cast(Coroutine[Any, Any, Response], result))
    return cast(Response, result)


def _body(response: Response) -> dict[str, Any]:
    return json.loads(bytes(response.body))


def test_http_setup_adds_security_headers_and_request_id(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    dispatch = _dispatch_by_name(app, "request_logging_middleware")

    request = _request("/ok", headers=[(b"x-request-id", b"req-123")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Cache-Control"] == "no-store"


def test_http_setup_rejects_large_request_before_handler(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    dispatch = _dispatch_by_name(app, "request_size_limit_middleware")
    request = _request("/echo", method="POST", headers=[(b"content-length", b"20")])

    async def call_next(_request: Request) -> Response:
        return Response(content="ok", status_code=200)

    response = asyncio.run(dispatch(request, call_next))
    assert response.status_code == 413
    assert _body(response)["errorCode"] == "REQUEST_TOO_LARGE"


def test_http_setup_serializes_api_error_envelope(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    request = _request("/api/auth/login")
    handler = app.exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(
            request,
            ApiError(
                status_code=429,
                error_code=ApiErrorCode.TOO_MANY_ATTEMPTS,
                message="Too many failed attempts",
                headers={"Retry-After": "120"},
            ),
        )
    )
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "120"
    assert _body(response) == {
        "success": False,
        "message": "Too many failed attempts",
        "errorCode": "TOO_MANY_ATTEMPTS",
    }


def test_http_setup_normalizes_plain_http_exception(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    handler = app.exception_handlers[HTTPException]
    response: Response = _resolve_response(
        handler(_request("/missing"), HTTPException(status_code=404, detail="Not Found"))
    )
    assert response.status_code == 404
    assert _body(response)["errorCode"] == "HTTP_404"


def test_http_setup_handles_unexpected_exceptions(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    request = _request("/boom")
    handler = app.exception_handlers[Exception]
    response: Response = _resolve_response(handler(request, RuntimeError("secret detail")))
    assert response.status_code == 500
    assert b"INTERNAL_SERVER_ERROR" in response.body
    assert b"secret detail" not in response.body


def test_http_setup_maps_validation_exception_to_400(tmp_path: Path) -> None:
    app = _build_app(tmp_path)
    request = _request("/validation")
    handler = app.exception_handlers[RequestValidationError]
    response: Response = _resolve_response(
        handler(
            request,
            RequestValidationError(
                [{"loc": ("body", "password"), "msg": "too short", "type": "value_error"}]
            ),
        )
    )
    assert response.status_code == 400
    assert _body(response)["errorCode"] == "VALIDATION_ERROR"
    assert _body(response)["message"] == "password: too short"
