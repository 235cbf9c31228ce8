from typing import Dict, Iterable

from mathbridge.services.message_store import MessageStore


class UnreadTracker:
    """Unread counts per peer, derived from the store's current snapshot.

    A peer whose conversation was never fetched counts as 0 even if the
    backend holds unread messages from them.
    """

    def __init__(self, store: MessageStore):
        self.store = store

    def unread_count(self, peer_id: int) -> int:
        viewer_id = self.store.viewer_id
        return sum(
            1 for message in self.store.get(peer_id)
            if message.receiver_id == viewer_id and not message.is_read
        )

    def unread_counts(self, peer_ids: Iterable[int]) -> Dict[int, int]:
        return {peer_id: self.unread_count(peer_id) for peer_id in peer_ids}

    def total_unread(self, peer_ids: Iterable[int]) -> int:
        return sum(self.unread_counts(peer_ids).values())
