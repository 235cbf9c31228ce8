from datetime import datetime, timedelta, timezone

import pytest

from mathbridge.main import app
from mathbridge.models.message import Message
from mathbridge.models.user import User, UserRole
from mathbridge.services.message_service import message_service
from mathbridge.services.user_directory import user_directory
from mathbridge.utils.security import create_access_token

TUTOR_ID = 1
STUDENT_ID = 2
OTHER_STUDENT_ID = 3

BASE_TIME = datetime(2024, 10, 1, 9, 0, tzinfo=timezone.utc)

SEED_USERS = [
    User(id=TUTOR_ID, email="tutor@mathbridge.vn", fullName="Nguyen Van A", role=UserRole.TUTOR),
    User(id=STUDENT_ID, email="student@mathbridge.vn", fullName="Tran Thi B", role=UserRole.STUDENT),
    User(id=OTHER_STUDENT_ID, email="le.c@mathbridge.vn", fullName="Le Van C", role=UserRole.STUDENT),
]


def token_for(user: User) -> str:
    return create_access_token({"sub": user.id, "email": user.email, "role": user.role.value})


@pytest.fixture(autouse=True)
def seeded_backend():
    """Fresh in-memory backend with one tutor and two students"""
    user_directory.reset()
    message_service.reset()

    for user in SEED_USERS:
        user_directory.add_user(user)
    yield
    user_directory.reset()
    message_service.reset()
    app.dependency_overrides = {}


@pytest.fixture
def tutor_token():
    return token_for(SEED_USERS[0])


@pytest.fixture
def student_token():
    return token_for(SEED_USERS[1])


@pytest.fixture
def make_message():
    """Factory for messages with a createdAt derived from the id"""

    def _make(message_id, sender_id, receiver_id, is_read=False, content=None, created_at=None):
        return Message(
            id=message_id,
            senderId=sender_id,
            receiverId=receiver_id,
            content=content or f"message {message_id}",
            createdAt=created_at or BASE_TIME + timedelta(minutes=message_id),
            isRead=is_read,
        )

    return _make
