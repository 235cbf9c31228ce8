"""
Chat session facade.

This is the surface the pages of the web client talk to: pick a peer, send
to them, read the threads and unread counts, leave the chat. It wires the
store, unread tracker, sync loop and send coordinator together for one
logged-in viewer.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Awaitable, Callable, Dict, List, Optional, Set

from mathbridge.exceptions import AuthError, ChatError, InvalidRecipientError, ViewerNotResolvedError
from mathbridge.models.message import Message
from mathbridge.models.user import User, Viewer
from mathbridge.services.message_api_client import MessageApiClient
from mathbridge.services.message_store import MessageStore
from mathbridge.services.send_coordinator import SendCoordinator
from mathbridge.services.session_context import SessionContext
from mathbridge.services.sync_loop import SyncLoop
from mathbridge.services.unread_tracker import UnreadTracker

logger = logging.getLogger(__name__)


class ChatSession:
    """Conversation state of one viewer, kept in sync with the backend"""

    def __init__(
        self,
        session: SessionContext,
        api: Optional[MessageApiClient] = None,
        interval_ms: Optional[int] = None,
        on_auth_error: Optional[Callable[[AuthError], Optional[Awaitable[None]]]] = None,
    ):
        self.session = session
        self.api = api or MessageApiClient(session)
        self.interval_ms = interval_ms
        self.on_auth_error = on_auth_error

        self.viewer: Optional[Viewer] = None
        self.store: Optional[MessageStore] = None
        self.tracker: Optional[UnreadTracker] = None
        self.sync_loop: Optional[SyncLoop] = None
        self.sender: Optional[SendCoordinator] = None

        self.peers: List[User] = []
        self.draft: str = ""
        self._send_locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._background: Set[asyncio.Task] = set()

    async def start(self) -> Viewer:
        """Resolve the viewer; every other operation waits for this"""
        try:
            viewer = await self.api.resolve_viewer_identity()
        except AuthError as e:
            await self._session_rejected(e)
            raise

        self.viewer = viewer
        self.store = MessageStore(viewer.id)
        self.tracker = UnreadTracker(self.store)
        self.sync_loop = SyncLoop(
            self.api.fetch_conversation,
            self.store,
            interval_ms=self.interval_ms,
            on_auth_error=self._session_rejected,
        )
        self.sender = SendCoordinator(self.api, self.sync_loop, viewer.id)
        return viewer

    def _require_viewer(self) -> Viewer:
        if self.viewer is None:
            raise ViewerNotResolvedError("Chat session has not been started")
        return self.viewer

    @property
    def active_peer(self) -> Optional[int]:
        return self.sync_loop.active_peer if self.sync_loop else None

    async def load_peers(self) -> List[User]:
        """Tutors see their students; everybody else sees the tutors"""
        viewer = self._require_viewer()
        try:
            self.peers = await self.api.list_users_by_role(viewer.role.chat_peer_role)
        except AuthError as e:
            await self._session_rejected(e)
            raise
        return self.peers

    async def select_peer(self, peer_id: int) -> List[Message]:
        """
        Open the conversation with ``peer_id``.

        Fetches it right away, starts polling it and tells the backend the
        viewer has read it.

        Raises:
            InvalidRecipientError: ``peer_id`` is the viewer
            AuthError: the session was rejected by the first fetch
        """
        viewer = self._require_viewer()
        if peer_id == viewer.id:
            raise InvalidRecipientError("Cannot open a conversation with yourself")

        self._spawn(self._mark_read(peer_id))
        try:
            await self.sync_loop.start(peer_id)
        except AuthError as e:
            await self._session_rejected(e)
            raise
        return self.get_messages_for(peer_id)

    async def send_to_active(self, content: Optional[str] = None) -> Message:
        """
        Send to the open conversation.

        Sends ``content``, or the current draft when omitted. The draft is
        cleared only when the send succeeds.
        """
        self._require_viewer()
        peer_id = self.active_peer
        if peer_id is None:
            raise InvalidRecipientError("No conversation is open")

        text = self.draft if content is None else content
        async with self._send_locks[peer_id]:
            try:
                sent = await self.sender.send(peer_id, text)
            except AuthError as e:
                self.draft = text
                await self._session_rejected(e)
                raise
            except ChatError:
                self.draft = text
                raise
        self.draft = ""
        return sent

    def get_messages_for(self, peer_id: int) -> List[Message]:
        if self.store is None:
            return []
        return list(self.store.get(peer_id))

    def get_unread_count(self, peer_id: int) -> int:
        if self.tracker is None:
            return 0
        return self.tracker.unread_count(peer_id)

    def unread_counts(self) -> Dict[int, int]:
        """Unread count for every loaded peer"""
        if self.tracker is None:
            return {}
        return self.tracker.unread_counts(peer.id for peer in self.peers)

    def leave_conversation(self) -> None:
        if self.sync_loop is not None:
            self.sync_loop.stop()

    async def close(self) -> None:
        """Stop polling, drop pending background calls and release the HTTP client"""
        if self.sync_loop is not None:
            self.sync_loop.shutdown()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._send_locks.clear()
        await self.api.aclose()

    async def _mark_read(self, peer_id: int) -> None:
        try:
            await self.api.mark_conversation_read(peer_id)
        except ChatError as e:
            logger.warning(f"Could not mark conversation with {peer_id} as read: {e}")

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _session_rejected(self, error: AuthError) -> None:
        logger.warning(f"Session rejected by the message backend: {error}")
        self.session.logout()
        if self.sync_loop is not None:
            self.sync_loop.stop()
        if self.store is not None:
            self.store.clear()
        self._send_locks.clear()
        if self.on_auth_error is not None:
            result = self.on_auth_error(error)
            if inspect.isawaitable(result):
                await result
