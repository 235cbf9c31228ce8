"""
Message persistence and queries for the message backend.

Messages are kept in process memory. Each message is stored once and
indexed by its conversation key so a thread is read without scanning
every message.
"""

import asyncio
import itertools
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from mathbridge.models.message import Message, conversation_key, sort_thread
from mathbridge.services.user_directory import UserDirectory, user_directory

logger = logging.getLogger(__name__)


class MessageService:
    """Creates messages, serves conversations and tracks read state"""

    def __init__(self, directory: UserDirectory):
        self.directory = directory
        self._messages: Dict[int, Message] = {}
        self._threads: Dict[tuple, List[int]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    async def send_message(self, sender_id: int, receiver_id: int, content: str) -> Message:
        if not content or not content.strip():
            raise ValueError("Message content cannot be empty")
        if sender_id == receiver_id:
            raise ValueError("Cannot send a message to yourself")

        sender = await self.directory.get_user(sender_id)
        if sender is None:
            raise ValueError(f"Sender not found with id: {sender_id}")
        receiver = await self.directory.get_user(receiver_id)
        if receiver is None:
            raise ValueError(f"Receiver not found with id: {receiver_id}")

        async with self._lock:
            message = Message(
                id=next(self._ids),
                senderId=sender.id,
                senderName=sender.full_name,
                senderEmail=sender.email,
                receiverId=receiver.id,
                receiverName=receiver.full_name,
                receiverEmail=receiver.email,
                content=content.strip(),
                createdAt=datetime.now(timezone.utc),
                isRead=False,
            )
            self._messages[message.id] = message
            self._threads[message.key].append(message.id)

        logger.info(f"Message {message.id} sent from {sender_id} to {receiver_id}")
        return message

    async def get_conversation(self, user1_id: int, user2_id: int) -> List[Message]:
        ids = self._threads.get(conversation_key(user1_id, user2_id), [])
        return sort_thread(self._messages[i] for i in ids)

    async def get_unread_messages(self, user_id: int) -> List[Message]:
        unread = [m for m in self._messages.values() if m.receiver_id == user_id and not m.is_read]
        return sorted(unread, key=lambda m: (m.created_at, m.id), reverse=True)

    async def get_all_messages(self, user_id: int) -> List[Message]:
        mine = [m for m in self._messages.values() if user_id in (m.sender_id, m.receiver_id)]
        return sorted(mine, key=lambda m: (m.created_at, m.id), reverse=True)

    async def mark_conversation_as_read(self, reader_id: int, other_user_id: int) -> int:
        """Mark every message from ``other_user_id`` to ``reader_id`` as read"""
        updated = 0
        async with self._lock:
            for message_id in self._threads.get(conversation_key(reader_id, other_user_id), []):
                message = self._messages[message_id]
                if message.receiver_id == reader_id and not message.is_read:
                    self._messages[message_id] = message.model_copy(update={"is_read": True})
                    updated += 1
        logger.debug(f"Marked {updated} messages from {other_user_id} as read for {reader_id}")
        return updated

    def get_message(self, message_id: int) -> Optional[Message]:
        return self._messages.get(message_id)

    def reset(self) -> None:
        self._messages.clear()
        self._threads.clear()
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()


# Global service instance
message_service = MessageService(user_directory)
