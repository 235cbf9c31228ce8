"""
User Models for MathBridge Chat

Accounts are owned by the platform's user directory; the chat only needs
their identity, display data and role.
"""

from datetime import datetime, timezone
from typing import Optional
from enum import Enum
from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator


def utc_now():
    """Get current UTC datetime (timezone-aware)"""
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    """User role enumeration"""

    ADMIN = "ADMIN"
    TUTOR = "TUTOR"
    STUDENT = "STUDENT"
    PARENT = "PARENT"
    FINANCE = "FINANCE"

    @classmethod
    def parse(cls, value: str) -> "UserRole":
        """Accept lower-case values and the legacy TEACHER alias"""
        normalized = value.strip().upper()
        if normalized == "TEACHER":
            return cls.TUTOR
        return cls(normalized)

    @property
    def chat_peer_role(self) -> "UserRole":
        """Tutors chat with students, everyone else chats with tutors"""
        return UserRole.STUDENT if self is UserRole.TUTOR else UserRole.TUTOR


class User(BaseModel):
    """
    A platform account as served by the user directory.
    """

    id: int
    email: EmailStr
    full_name: str = Field(..., alias="fullName", min_length=1, max_length=255)
    role: UserRole = UserRole.STUDENT
    phone: Optional[str] = None
    created_at: Optional[datetime] = Field(default_factory=utc_now, alias="createdAt")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "id": 7,
                "email": "tutor@mathbridge.vn",
                "fullName": "Nguyen Van A",
                "role": "TUTOR",
            }
        },
    )

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        if isinstance(value, str):
            return UserRole.parse(value)
        return value


class Viewer(BaseModel):
    """The authenticated user running the chat client"""

    id: int
    email: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    role: UserRole = UserRole.STUDENT

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("role", mode="before")
    @classmethod
    def _parse_role(cls, value):
        if isinstance(value, str):
            return UserRole.parse(value)
        return value
