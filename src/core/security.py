"""Security helpers for JWT sessions and guest access codes."""

import hmac
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from .config import settings

ACCESS_CODE_ALPHABET = string.ascii_uppercase + string.digits


class TokenDecodeError(Exception):
    """Raised when a JWT cannot be decoded or is invalid."""


def create_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    """Create a signed JWT."""
    expire_in = expires_minutes or settings.jwt_expires_in_minutes
    to_encode: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "exp": datetime.now(tz=timezone.utc) + timedelta(minutes=expire_in),
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT, raising TokenDecodeError on failure."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:  # pragma: no cover - jose already well tested
        raise TokenDecodeError("Invalid token") from exc


def generate_access_code(length: int | None = None) -> str:
    """Return a random uppercase alphanumeric guest access code."""
    size = length or settings.access_code_length
    return "".join(secrets.choice(ACCESS_CODE_ALPHABET) for _ in range(size))


def normalize_access_code(value: str) -> str:
    return value.strip().upper()


def access_codes_match(supplied: str, stored: str | None) -> bool:
    """Constant-time comparison of a supplied code against the stored one."""
    if not stored:
        return False
    return hmac.compare_digest(
        normalize_access_code(supplied).encode("utf-8"),
        stored.encode("utf-8"),
    )
