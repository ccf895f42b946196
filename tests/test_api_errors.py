from __future__ import annotations

from uzpharm.api.errors import ApiError, ApiErrorCode, to_error_payload


def test_to_error_payload_preserves_structured_detail() -> None:
    payload = to_error_payload(
        {"error_code": "INVALID_TOKEN", "message": "Invalid"},
        401,
    )

    assert payload == {"error_code": "INVALID_TOKEN", "message": "Invalid"}


def test_to_error_payload_normalizes_plain_string() -> None:
    payload = to_error_payload("boom", 500)

    assert payload == {"error_code": "HTTP_500", "message": "boom"}


def test_api_error_exposes_code_message_and_headers() -> None:
    exc = ApiError(
        status_code=429,
        error_code=ApiErrorCode.TOO_MANY_ATTEMPTS,
        message="slow down",
        headers={"Retry-After": "60"},
    )

    assert exc.error_code == ApiErrorCode.TOO_MANY_ATTEMPTS
    assert exc.message == "slow down"
    assert exc.detail == {"error_code": "TOO_MANY_ATTEMPTS", "message": "slow down"}
    assert exc.headers == {"Retry-After": "60"}
