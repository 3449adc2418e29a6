"""
Virtual Trading - Security
Bearer token handling. Tokens are issued elsewhere; the trading API only
needs the subject (the account email) of a valid access token.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import uuid

from jose import jwt, JWTError

from virtrade.config import settings


def create_access_token(
    subject: str | Any,
    expires_delta: Optional[timedelta] = None,
) -> tuple[str, str]:
    """
    Create a JWT access token.

    Args:
        subject: Account email
        expires_delta: Optional custom expiration time

    Returns:
        Tuple of (encoded JWT token string, jti)
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    token_jti = str(uuid.uuid4())

    to_encode = {
        "exp": expire,
        "sub": str(subject),
        "iat": now,
        "type": "access",
        "jti": token_jti,
    }
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt, token_jti


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a token; None when invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def verify_token(token: str, token_type: str = "access") -> Optional[str]:
    """Subject of a valid token of the given type, else None."""
    payload = decode_token(token)
    if payload is None or payload.get("type") != token_type:
        return None
    return payload.get("sub")
