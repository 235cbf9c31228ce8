"""
HTTP client for the message backend.

Every call maps transport problems to ``NetworkError`` and rejected
credentials to ``AuthError`` so callers can tell a flaky connection from an
expired session. Nothing is retried here.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import quote

import httpx

from mathbridge.config import settings
from mathbridge.exceptions import AuthError, BackendError, NetworkError
from mathbridge.models.message import Message, sort_thread
from mathbridge.models.user import User, UserRole, Viewer
from mathbridge.services.session_context import SessionContext

logger = logging.getLogger(__name__)

AUTH_STATUS_CODES = (401, 403)


def _error_text(response: httpx.Response) -> Optional[str]:
    """Pull a readable message out of an error body ({"error"}, {"detail"} or {"message"})"""
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            if isinstance(body.get(key), str):
                return body[key]
    return None


class MessageApiClient:
    """Conversation fetcher and the other backend calls the chat needs"""

    def __init__(
        self,
        session: SessionContext,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.session = session
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        if not self.session.is_authenticated:
            raise AuthError("No active session")

        headers = {"Content-Type": "application/json", **self.session.auth_headers()}
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.status_code in AUTH_STATUS_CODES:
            raise AuthError(_error_text(response) or "Session expired")
        if response.status_code >= 500:
            raise NetworkError(f"{method} {path} failed: server error {response.status_code}")
        if response.status_code >= 400:
            raise BackendError(response.status_code, _error_text(response))

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(f"{method} {path} returned malformed JSON") from e

    async def fetch_conversation(self, peer_id: int) -> List[Message]:
        """
        Full message thread between the viewer and ``peer_id``.

        Returns:
            Messages ordered by createdAt, ties by id

        Raises:
            NetworkError: transport failure or 5xx
            AuthError: session rejected
        """
        data = await self._request("GET", f"/api/messages/conversation/{peer_id}")
        return sort_thread(Message.model_validate(item) for item in data or [])

    async def send_message(self, receiver_id: int, content: str) -> Message:
        """Create one message and return the backend's representation of it"""
        data = await self._request(
            "POST",
            "/api/messages/send",
            json={"receiverId": receiver_id, "content": content},
        )
        return Message.model_validate(data)

    async def mark_conversation_read(self, peer_id: int) -> None:
        await self._request("POST", f"/api/messages/mark-read/{peer_id}")

    async def fetch_unread(self) -> List[Message]:
        data = await self._request("GET", "/api/messages/unread")
        return [Message.model_validate(item) for item in data or []]

    async def fetch_all(self) -> List[Message]:
        data = await self._request("GET", "/api/messages/all")
        return [Message.model_validate(item) for item in data or []]

    async def list_users_by_role(self, role: UserRole) -> List[User]:
        data = await self._request("GET", f"/api/users/role/{role.value}")
        return [User.model_validate(item) for item in data or []]

    async def resolve_viewer_identity(self) -> Viewer:
        """
        Work out who the logged-in user is.

        Looks the user up by the email hint first and falls back to
        ``/api/users/me``. A role chosen at login takes precedence over the
        role stored in the directory.
        """
        hints = self.session.identity_hints()
        user_data = None

        if hints["email"]:
            try:
                user_data = await self._request("GET", f"/api/users/email/{quote(hints['email'], safe='')}")
            except BackendError as e:
                logger.info(f"Lookup by email failed ({e.status_code}), asking for /me instead")

        if not user_data:
            user_data = await self._request("GET", "/api/users/me")

        user = User.model_validate(user_data)
        viewer = Viewer(
            id=user.id,
            email=user.email,
            fullName=user.full_name,
            role=hints["role"] or user.role,
        )
        self.session.viewer = viewer
        logger.info(f"Resolved viewer {viewer.id} as {viewer.role.value}")
        return viewer
