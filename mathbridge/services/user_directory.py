"""
In-memory user directory backing the message backend.

Accounts are created by the platform's registration flow, which lives
outside this service; here they are only registered and looked up.
"""

import logging
from typing import Dict, List, Optional

from mathbridge.models.user import User, UserRole

logger = logging.getLogger(__name__)


class UserDirectory:
    """Lookup of platform accounts by id, email and role"""

    def __init__(self):
        self._users: Dict[int, User] = {}

    def add_user(self, user: User) -> User:
        """Register or replace an account; emails stay unique"""
        for existing in self._users.values():
            if existing.email.lower() == user.email.lower() and existing.id != user.id:
                raise ValueError(f"Email already registered: {user.email}")
        self._users[user.id] = user
        logger.debug(f"Registered user {user.id} ({user.role.value})")
        return user

    async def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user
        return None

    async def list_by_role(self, role: UserRole) -> List[User]:
        return sorted(
            (user for user in self._users.values() if user.role is role),
            key=lambda u: u.id,
        )

    def reset(self) -> None:
        self._users.clear()


# Global directory instance
user_directory = UserDirectory()
