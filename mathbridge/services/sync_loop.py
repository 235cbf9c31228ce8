"""
Polling of the open conversation.

While a peer is selected the loop re-fetches that conversation on a fixed
interval and writes the result into the message store. Each activation is
one APScheduler interval job behind a ``CancellationHandle``.

Every fetch is tagged with a monotonic sequence number. A result is only
written if no newer fetch for the same peer has already been written, and,
for poll ticks, only while the activation that issued it is still current.
A slow response can therefore never overwrite fresher data or land in a
conversation the user has moved away from.
"""

import inspect
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Sequence

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mathbridge.config import settings
from mathbridge.exceptions import AuthError, NetworkError
from mathbridge.models.message import Message
from mathbridge.services.message_store import MessageStore

logger = logging.getLogger(__name__)

Fetcher = Callable[[int], Awaitable[Sequence[Message]]]
AuthErrorCallback = Callable[[AuthError], Optional[Awaitable[None]]]


class CancellationHandle:
    """Stops one activation of the sync loop. Cancelling twice is a no-op."""

    def __init__(self, loop: "SyncLoop", peer_id: int, generation: int):
        self._loop = loop
        self.peer_id = peer_id
        self.generation = generation
        self.error: Optional[AuthError] = None
        self._cancelled = False

    @property
    def job_id(self) -> str:
        return f"conversation-sync-{self.peer_id}-{self.generation}"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled and self.error is None and self._loop.current is self

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._loop._release(self)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else ("halted" if self.error else "active")
        return f"<CancellationHandle peer={self.peer_id} gen={self.generation} {state}>"


class SyncLoop:
    """Keeps the store's entry for the active conversation fresh"""

    def __init__(
        self,
        fetch: Fetcher,
        store: MessageStore,
        interval_ms: Optional[int] = None,
        on_auth_error: Optional[AuthErrorCallback] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.fetch = fetch
        self.store = store
        self.interval_seconds = (interval_ms if interval_ms is not None else settings.POLL_INTERVAL_MS) / 1000
        self.on_auth_error = on_auth_error
        self.scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self.current: Optional[CancellationHandle] = None
        self._generation = 0
        self._seq = 0
        self._applied_seq: Dict[int, int] = {}

        self.last_tick: Optional[datetime] = None
        self.last_tick_status: str = "idle"
        self.consecutive_failures = 0

    @property
    def active_peer(self) -> Optional[int]:
        return self.current.peer_id if self.current else None

    async def start(self, peer_id: int) -> CancellationHandle:
        """
        Make ``peer_id`` the active conversation.

        Cancels the previous activation, fetches the conversation once right
        away and then schedules the periodic refresh.

        Raises:
            AuthError: the first fetch was rejected; nothing is scheduled
        """
        if self.current is not None:
            self.current.cancel()

        self._generation += 1
        handle = CancellationHandle(self, peer_id, self._generation)
        self.current = handle
        logger.debug(f"Sync loop active for peer {peer_id} (generation {handle.generation})")

        await self._poll(handle, raise_auth=True)
        if handle.active:
            self._schedule(handle)
        return handle

    def stop(self) -> None:
        """Back to idle; no further fetches are issued"""
        if self.current is not None:
            self.current.cancel()

    async def refresh(self, peer_id: int, handle: Optional[CancellationHandle] = None) -> bool:
        """
        Fetch one conversation and write it to the store unless it went stale.

        Returns:
            True if the result was written
        """
        self._seq += 1
        seq = self._seq
        messages = await self.fetch(peer_id)

        if handle is not None and not handle.active:
            logger.debug(f"Dropping response #{seq} for peer {peer_id}: activation ended")
            return False
        if seq < self._applied_seq.get(peer_id, 0):
            logger.debug(f"Dropping response #{seq} for peer {peer_id}: newer data already stored")
            return False

        self.store.replace(peer_id, messages)
        self._applied_seq[peer_id] = seq
        return True

    async def _poll(self, handle: CancellationHandle, raise_auth: bool = False) -> None:
        if not handle.active:
            return

        self.last_tick = datetime.now()
        try:
            if not await self.refresh(handle.peer_id, handle):
                return
        except NetworkError as e:
            if not handle.active:
                logger.debug(f"Ignoring failed fetch for peer {handle.peer_id} after cancellation: {e}")
                return
            self.consecutive_failures += 1
            self.last_tick_status = "network_error"
            logger.warning(
                f"Polling conversation with {handle.peer_id} failed "
                f"({self.consecutive_failures} in a row): {e}"
            )
            return
        except AuthError as e:
            if not handle.active:
                return
            self.last_tick_status = "auth_error"
            self._halt(handle, e)
            if raise_auth:
                raise
            await self._notify_auth_error(e)
            return
        except Exception as e:
            if not handle.active:
                logger.debug(f"Ignoring failed fetch for peer {handle.peer_id} after cancellation: {e}")
                return
            self.consecutive_failures += 1
            self.last_tick_status = f"error: {e}"
            logger.exception(f"Unexpected error polling conversation with {handle.peer_id}")
            return

        self.consecutive_failures = 0
        self.last_tick_status = "success"

    def _schedule(self, handle: CancellationHandle) -> None:
        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler()
        if not self.scheduler.running:
            self.scheduler.start()

        self.scheduler.add_job(
            self._poll,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            args=[handle],
            id=handle.job_id,
            name=f"Conversation sync with {handle.peer_id}",
            replace_existing=True,
            max_instances=2,  # a slow tick is overtaken by the next one
            coalesce=True,
        )

    def _unschedule(self, handle: CancellationHandle) -> None:
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(handle.job_id)
        except JobLookupError:
            pass

    def _release(self, handle: CancellationHandle) -> None:
        self._unschedule(handle)
        if self.current is handle:
            self.current = None
            self.last_tick_status = "idle"
            logger.debug(f"Sync loop for peer {handle.peer_id} cancelled")

    def _halt(self, handle: CancellationHandle, error: AuthError) -> None:
        handle.error = error
        self._unschedule(handle)
        if self.current is handle:
            self.current = None
        logger.warning(f"Sync loop for peer {handle.peer_id} halted: session rejected ({error})")

    async def _notify_auth_error(self, error: AuthError) -> None:
        if self.on_auth_error is None:
            return
        result = self.on_auth_error(error)
        if inspect.isawaitable(result):
            await result

    def shutdown(self) -> None:
        self.stop()
        if self._owns_scheduler and self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def get_status(self) -> dict:
        """
        Snapshot of the loop state.

        Returns:
            Dictionary with status information
        """
        return {
            "active_peer": self.active_peer,
            "generation": self._generation,
            "interval_seconds": self.interval_seconds,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_tick_status": self.last_tick_status,
            "consecutive_failures": self.consecutive_failures,
        }
