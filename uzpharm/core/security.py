"""Security primitives for password hashing and token signing."""

from __future__ import annotations

import hashlib
from typing import Any

import bcrypt
import jwt

TOKEN_ALGORITHM = "HS256"
BCRYPT_MAX_PASSWORD_BYTES = 72


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash password with bcrypt using the given cost factor."""
    raw = password.encode("utf-8")
    if len(raw) > BCRYPT_MAX_PASSWORD_BYTES:
        raise ValueError(
            f"Password must not exceed {BCRYPT_MAX_PASSWORD_BYTES} bytes"
        )
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored bcrypt hash."""
    if not stored_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored_hash.encode("utf-8"))
    except ValueError:
        return False


def build_signed_token(payload: dict[str, Any], secret_key: str) -> str:
    """Create a compact HS256 JWT."""
    return jwt.encode(payload, secret_key, algorithm=TOKEN_ALGORITHM)


def decode_signed_token(
    token: str, secret_key: str, *, issuer: str, audience: str
) -> dict[str, Any]:
    """Decode and verify a JWT, raising ``ValueError`` on any failure."""
    try:
        return jwt.decode(
            token,
            secret_key,
            algorithms=[TOKEN_ALGORITHM],
            issuer=issuer,
            audience=audience,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ValueError("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise ValueError("Invalid token") from exc


def digest_token(token: str) -> str:
    """Hash raw token for storage/comparison."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
