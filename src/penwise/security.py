"""Hashing, token minting and OTP generation.

Passwords and OTP codes share the same bcrypt digest format, so the session
layer only sees ``hash_secret``/``verify_secret``.
"""

import secrets
from datetime import timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from penwise.utils import now

OTP_DIGITS = 6


def hash_secret(plaintext: str) -> str:
    return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_secret(digest: str | None, plaintext: str) -> bool:
    """Check plaintext against a bcrypt digest. A missing or malformed digest never matches."""
    if not digest:
        return False
    try:
        return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
    except ValueError:
        return False


def generate_otp() -> str:
    """Numeric one-time password, zero padded."""
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(32)


def create_access_token(user_id: str, role: str, secret: str, algorithm: str, expire_minutes: int) -> str:
    """Short-lived access token embedding the user id and role."""
    issued_at = now()
    payload: dict[str, Any] = {
        "type": "access",
        "userId": user_id,
        "role": role,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + timedelta(minutes=expire_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str) -> dict[str, Any] | None:
    """Return the access token payload, or None when the token is invalid or expired."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None
    if not isinstance(payload, dict) or payload.get("type") != "access":
        return None
    if not payload.get("userId"):
        return None
    return payload
