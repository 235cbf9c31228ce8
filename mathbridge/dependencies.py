"""
FastAPI dependency injection for authentication
"""

import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError

from mathbridge.models.user import User
from mathbridge.services.user_directory import user_directory
from mathbridge.utils.security import verify_access_token

logger = logging.getLogger(__name__)

# Security scheme for JWT Bearer tokens
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> User:
    """
    Dependency to get the current authenticated user from JWT token

    Raises:
        HTTPException: 401 if the token is missing, invalid, or names an
        unknown user
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise credentials_exception

    try:
        payload = verify_access_token(credentials.credentials)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as e:
        logger.debug(f"Token verification failed: {e}")
        raise credentials_exception

    user = await user_directory.get_user(user_id)
    if user is None:
        logger.debug(f"Token valid but user {user_id} not found")
        raise credentials_exception
    return user
