"""
MathBridge Chat - tutor/student conversation sync
"""

from mathbridge.exceptions import (
    AuthError,
    BackendError,
    ChatError,
    EmptyMessageError,
    InvalidRecipientError,
    NetworkError,
)
from mathbridge.services.chat_session import ChatSession
from mathbridge.services.session_context import SessionContext

__version__ = "1.0.0"
__app_name__ = "MathBridge Chat"

__all__ = [
    "ChatSession",
    "SessionContext",
    "ChatError",
    "NetworkError",
    "AuthError",
    "InvalidRecipientError",
    "EmptyMessageError",
    "BackendError",
]
