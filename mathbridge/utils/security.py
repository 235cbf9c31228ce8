"""
JWT helpers shared by the message backend and the chat client
"""

from datetime import datetime, timedelta, UTC
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from jose.exceptions import JOSEError
from mathbridge.config import settings


def create_access_token(
    data: Dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token

    Args:
        data: Claims to encode; ``sub`` must hold the user id
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token
    """
    to_encode = data.copy()
    if "sub" in to_encode:
        to_encode["sub"] = str(to_encode["sub"])

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire, "iat": datetime.now(UTC), "type": "access"})

    return jwt.encode(
        to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
    )


def verify_access_token(token: str) -> Dict[str, Any]:
    """
    Decode and verify an access token

    Raises:
        JWTError: If token is invalid, expired, or not an access token
    """
    try:
        payload = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise JWTError(f"Invalid token: {str(e)}")

    if payload.get("type") != "access":
        raise JWTError("Invalid token type")

    return payload


def read_unverified_claims(token: str) -> Dict[str, Any]:
    """
    Read the claims of a token without checking its signature.

    The client only uses these as hints (email, role) before asking the
    backend who it is; anything malformed yields an empty dict.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JOSEError:
        return {}
    return claims if isinstance(claims, dict) else {}
