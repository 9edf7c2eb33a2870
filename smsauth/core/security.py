"""
Session token and cookie helpers.

The cookie itself is issued by the HTTP layer; this module only builds and
reads the signed value and the cookie attributes every caller must honor.
"""
from datetime import datetime, timezone
from typing import Optional

from jose import jwt, JWTError

from .config import settings, SESSION_MAX_AGE


def create_session_token(subject: str, auth_provider: str = "phone") -> str:
    """
    Create a signed session token for a verified subject.

    Args:
        subject: Durable subject identifier (user id)
        auth_provider: How the subject authenticated

    Returns:
        JWT string valid for the session max age
    """
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + SESSION_MAX_AGE,
        "auth_provider": auth_provider,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.ALGORITHM)


def decode_session_token(token: str) -> Optional[str]:
    """Return the subject of a valid session token, or None."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    return payload.get("sub")


def session_cookie_params() -> dict:
    """httpOnly, 30-day, SameSite=Lax, Secure in production."""
    return {
        "key": settings.SESSION_COOKIE_NAME,
        "httponly": True,
        "secure": settings.is_production,
        "samesite": "lax",
        "max_age": int(SESSION_MAX_AGE.total_seconds()),
        "path": "/",
    }
