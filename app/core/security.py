"""Security and Authentication Utilities

Sessions are owned by the managed auth service. This module only verifies
the HS256 access tokens it issues (and mints equivalent tokens for local
development and tests).
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from app.config import settings


def create_access_token(
    subject: str,
    email: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token shaped like the auth service's tokens.

    Args:
        subject: User ID placed in the "sub" claim
        email: Optional email claim
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode = {
        "sub": subject,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "exp": expire,
    }
    if email:
        to_encode["email"] = email
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token to decode

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return None


def verify_job_token(candidate: Optional[str]) -> bool:
    """Constant-time check of the scheduler's shared secret"""
    if not settings.JOB_TOKEN or not candidate:
        return False
    return hmac.compare_digest(candidate.encode(), settings.JOB_TOKEN.encode())
