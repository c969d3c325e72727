from __future__ import annotations

from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import secrets
from typing import Any

from jose import jwt

from estatehub.core.config import get_settings

REFRESH_TOKEN_BYTES = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def hash_otp(secret: str, identifier: str, code: str) -> str:
    return _hmac_hex(secret, f"{identifier}:{code}")


def hash_refresh_token(secret: str, token: str) -> str:
    return _hmac_hex(secret, token)


def hashes_match(candidate: str, stored: str) -> bool:
    return secrets.compare_digest(candidate, stored)


def generate_refresh_token() -> str:
    return secrets.token_hex(REFRESH_TOKEN_BYTES)


def create_access_token(
    subject: str | int,
    *,
    claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
    settings=None,
) -> str:
    settings = settings or get_settings()
    now = utcnow()
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode: dict[str, Any] = dict(claims or {})
    to_encode.update({"sub": str(subject), "iat": int(now.timestamp()), "exp": int(expire.timestamp())})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, *, settings=None) -> dict[str, Any]:
    settings = settings or get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
