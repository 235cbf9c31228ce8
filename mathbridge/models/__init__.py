from mathbridge.models.message import Message, conversation_key
from mathbridge.models.user import User, UserRole, Viewer

__all__ = ["Message", "conversation_key", "User", "UserRole", "Viewer"]
