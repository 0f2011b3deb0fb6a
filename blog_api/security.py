"""
Password hashing and JWT helpers.

Passwords are checked against bcrypt hashes; access tokens are HS256
JWTs carrying the user id in ``sub`` and the user role in ``role``.
"""
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from blog_api.config import settings


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Return True when *password* matches the bcrypt *password_hash*."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in configuration.
        return False


def create_access_token(
    subject: str,
    role: str,
    secret_key: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta or timedelta(minutes=settings.JWT_EXPIRES_MINUTES))
    payload = {"sub": subject, "role": role, "iat": now, "exp": expires}
    return jwt.encode(payload, secret_key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, secret_key: str | None = None) -> dict:
    """
    Decode and verify *token*.

    Raises:
        ValueError: if the token is expired, tampered with or malformed.
    """
    try:
        return jwt.decode(
            token,
            secret_key or settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise ValueError("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise ValueError(f"Invalid token: {exc}") from exc
