from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from typing import Iterable, List, Optional, Tuple


ConversationKey = Tuple[int, int]


def conversation_key(user1_id: int, user2_id: int) -> ConversationKey:
    """Canonical key of the unordered pair {user1, user2}"""
    return (min(user1_id, user2_id), max(user1_id, user2_id))


class Message(BaseModel):
    id: int
    sender_id: int = Field(..., alias="senderId")
    receiver_id: int = Field(..., alias="receiverId")
    content: str = Field(..., min_length=1)
    created_at: datetime = Field(..., alias="createdAt")
    is_read: bool = Field(False, alias="isRead")
    sender_name: Optional[str] = Field(None, alias="senderName")
    sender_email: Optional[str] = Field(None, alias="senderEmail")
    receiver_name: Optional[str] = Field(None, alias="receiverName")
    receiver_email: Optional[str] = Field(None, alias="receiverEmail")

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={
            "example": {
                "id": 42,
                "senderId": 3,
                "receiverId": 7,
                "content": "Thầy ơi, em chưa hiểu bài 5.",
                "createdAt": "2024-10-01T09:30:00Z",
                "isRead": False,
                "senderName": "Tran Thi B",
                "receiverName": "Nguyen Van A",
            }
        },
    )

    @property
    def key(self) -> ConversationKey:
        return conversation_key(self.sender_id, self.receiver_id)


def thread_order(message: Message):
    """Sort key of a conversation view: createdAt ascending, ties by id"""
    return (message.created_at, message.id)


def sort_thread(messages: Iterable[Message]) -> List[Message]:
    return sorted(messages, key=thread_order)
