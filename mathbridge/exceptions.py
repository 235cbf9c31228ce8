"""
Error taxonomy for the conversation client
"""

from typing import Optional


class ChatError(Exception):
    """Base class for all chat client errors"""


class NetworkError(ChatError):
    """Transport or connectivity failure talking to the message backend"""


class AuthError(ChatError):
    """Expired or invalid session credentials"""


class InvalidRecipientError(ChatError):
    """Send attempted to the viewer themself, or with no peer selected"""


class EmptyMessageError(ChatError, ValueError):
    """Message content is empty after trimming"""


class ViewerNotResolvedError(ChatError):
    """The chat session was used before the viewer identity was resolved"""


class BackendError(ChatError):
    """Backend answered with a non-success status that is not auth related"""

    def __init__(self, status_code: int, message: Optional[str] = None):
        self.status_code = status_code
        self.message = message or "Request failed"
        super().__init__(f"{status_code}: {self.message}")


class ConversationMismatchError(AssertionError):
    """A message does not belong to the conversation it is stored under"""
