"""
User directory API endpoints used by the chat client
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from mathbridge.dependencies import get_current_user
from mathbridge.models.user import User, UserRole
from mathbridge.services.user_directory import user_directory

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("/me", response_model=User)
async def get_me(current_user: User = Depends(get_current_user)):
    """The account the bearer token belongs to"""
    return current_user


@router.get("/email/{email}", response_model=User)
async def get_user_by_email(email: str, current_user: User = Depends(get_current_user)):
    """
    Look up a user by email address

    - **email**: exact address, case-insensitive
    """
    user = await user_directory.get_user_by_email(email)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("/role/{role}", response_model=List[User])
async def list_users_by_role(role: str, current_user: User = Depends(get_current_user)):
    """
    List users with a given role (TUTOR, STUDENT, ...)
    """
    try:
        parsed = UserRole.parse(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown role: {role}"
        )
    return await user_directory.list_by_role(parsed)
