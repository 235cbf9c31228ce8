"""
Client-side store of fetched conversations, keyed by participant pair.
"""

from typing import Dict, Iterable, List, Tuple

from mathbridge.exceptions import ConversationMismatchError
from mathbridge.models.message import ConversationKey, Message, conversation_key


class MessageStore:
    """
    Latest fetched thread per conversation of one viewer.

    Pure in-memory data: no I/O, and reads never fail. Only the sync loop
    and the send coordinator write to it.
    """

    def __init__(self, viewer_id: int):
        self.viewer_id = viewer_id
        self._threads: Dict[ConversationKey, Tuple[Message, ...]] = {}

    def _key(self, peer_id: int) -> ConversationKey:
        return conversation_key(self.viewer_id, peer_id)

    def replace(self, peer_id: int, messages: Iterable[Message]) -> None:
        """Overwrite the thread with ``peer_id``; order is kept as given"""
        key = self._key(peer_id)
        thread = tuple(messages)
        for message in thread:
            if message.key != key:
                raise ConversationMismatchError(
                    f"Message {message.id} ({message.sender_id}->{message.receiver_id}) "
                    f"is not part of conversation {key}"
                )
        self._threads[key] = thread

    def get(self, peer_id: int) -> Tuple[Message, ...]:
        return self._threads.get(self._key(peer_id), ())

    def has(self, peer_id: int) -> bool:
        return self._key(peer_id) in self._threads

    def peers(self) -> List[int]:
        """Peers with at least one fetched thread (possibly empty)"""
        return sorted(b if a == self.viewer_id else a for a, b in self._threads)

    def clear(self) -> None:
        self._threads.clear()
