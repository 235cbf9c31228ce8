"""
Outbound messages.

A send is never appended to the store optimistically: once the backend has
accepted it the whole conversation is fetched again, so the store carries
the server's id and timestamp plus anything the peer sent meanwhile.
"""

import logging

from mathbridge.exceptions import EmptyMessageError, InvalidRecipientError, NetworkError
from mathbridge.models.message import Message
from mathbridge.services.message_api_client import MessageApiClient
from mathbridge.services.sync_loop import SyncLoop

logger = logging.getLogger(__name__)


class SendCoordinator:
    """Pushes a message to the backend and resynchronizes its conversation"""

    def __init__(self, api: MessageApiClient, sync_loop: SyncLoop, viewer_id: int):
        self.api = api
        self.sync_loop = sync_loop
        self.viewer_id = viewer_id

    def validate(self, receiver_id: int, content: str) -> str:
        """
        Check the send preconditions and return the trimmed content.

        Raises:
            EmptyMessageError: content is blank
            InvalidRecipientError: receiver is the viewer
        """
        text = (content or "").strip()
        if not text:
            raise EmptyMessageError("Message content cannot be empty")
        if receiver_id == self.viewer_id:
            raise InvalidRecipientError("Cannot send a message to yourself")
        return text

    async def send(self, receiver_id: int, content: str) -> Message:
        """
        Send ``content`` to ``receiver_id``.

        Returns:
            The message as stored by the backend

        Raises:
            EmptyMessageError, InvalidRecipientError: before any backend call
            NetworkError, AuthError, BackendError: the send itself failed and
            the store was left untouched
        """
        text = self.validate(receiver_id, content)

        sent = await self.api.send_message(receiver_id, text)
        logger.info(f"Message {sent.id} delivered to {receiver_id}")

        try:
            await self.sync_loop.refresh(receiver_id)
        except NetworkError as e:
            # The send itself succeeded; the next poll tick catches the store up.
            logger.warning(f"Refreshing conversation with {receiver_id} after send failed: {e}")
        return sent
