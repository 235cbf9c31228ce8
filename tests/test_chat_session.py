"""
End-to-end tests: the chat client against the real message backend app,
wired through httpx's ASGI transport.
"""

import asyncio
from unittest.mock import AsyncMock

import httpx
import pytest

from mathbridge.exceptions import AuthError, InvalidRecipientError, NetworkError, ViewerNotResolvedError
from mathbridge.main import app
from mathbridge.models.user import UserRole
from mathbridge.services.chat_session import ChatSession
from mathbridge.services.message_api_client import MessageApiClient
from mathbridge.services.message_service import message_service
from mathbridge.services.session_context import SessionContext

from conftest import OTHER_STUDENT_ID, STUDENT_ID, TUTOR_ID


def make_session(token, interval_ms=60_000, **kwargs):
    context = SessionContext(token)
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    api = MessageApiClient(context, http_client=http_client)
    return ChatSession(context, api=api, interval_ms=interval_ms, **kwargs)


async def drain_background(session):
    if session._background:
        await asyncio.gather(*list(session._background))


async def wait_until(predicate, timeout=3.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_start_resolves_viewer_and_peers(tutor_token):
    session = make_session(tutor_token)
    try:
        viewer = await session.start()
        peers = await session.load_peers()

        assert viewer.id == TUTOR_ID
        assert viewer.role is UserRole.TUTOR
        assert [p.id for p in peers] == [STUDENT_ID, OTHER_STUDENT_ID]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_student_sees_tutors(student_token):
    session = make_session(student_token)
    try:
        await session.start()
        peers = await session.load_peers()

        assert [p.id for p in peers] == [TUTOR_ID]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_select_peer_without_history(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()
        messages = await session.select_peer(STUDENT_ID)

        assert messages == []
        assert session.get_messages_for(STUDENT_ID) == []
        assert session.get_unread_count(STUDENT_ID) == 0
        assert session.active_peer == STUDENT_ID
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_send_to_active_stores_server_assigned_message(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        session.draft = "hello"

        sent = await session.send_to_active()

        stored = session.get_messages_for(STUDENT_ID)
        assert [m.id for m in stored] == [sent.id]
        assert stored[0].content == "hello"
        assert stored[0].sender_name == "Nguyen Van A"
        assert message_service.get_message(sent.id) is not None
        assert session.draft == ""
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_unread_counts_follow_read_state(tutor_token):
    await message_service.send_message(STUDENT_ID, TUTOR_ID, "Thầy ơi")
    await message_service.send_message(STUDENT_ID, TUTOR_ID, "Em gửi bài")
    await message_service.send_message(OTHER_STUDENT_ID, TUTOR_ID, "Chào thầy")

    session = make_session(tutor_token)
    try:
        await session.start()
        await session.load_peers()
        assert session.unread_counts() == {STUDENT_ID: 0, OTHER_STUDENT_ID: 0}

        await session.sync_loop.refresh(STUDENT_ID)
        assert session.get_unread_count(STUDENT_ID) == 2

        await session.select_peer(STUDENT_ID)
        await drain_background(session)
        await session.sync_loop.refresh(STUDENT_ID)

        assert session.get_unread_count(STUDENT_ID) == 0
        assert session.get_unread_count(OTHER_STUDENT_ID) == 0
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_polling_picks_up_peer_reply(tutor_token):
    session = make_session(tutor_token, interval_ms=20)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)

        reply = await message_service.send_message(STUDENT_ID, TUTOR_ID, "Em hiểu rồi ạ")

        await wait_until(lambda: any(m.id == reply.id for m in session.get_messages_for(STUDENT_ID)))
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_failed_send_keeps_draft(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        session.api.send_message = AsyncMock(side_effect=NetworkError("offline"))
        session.draft = "bài tập tuần này"

        with pytest.raises(NetworkError):
            await session.send_to_active()

        assert session.draft == "bài tập tuần này"
        assert session.get_messages_for(STUDENT_ID) == []
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_blank_send_keeps_draft_and_skips_backend(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        session.api.send_message = AsyncMock()

        with pytest.raises(ValueError):
            await session.send_to_active("   ")

        session.api.send_message.assert_not_called()
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_send_without_active_peer_is_rejected(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()

        with pytest.raises(InvalidRecipientError):
            await session.send_to_active("hello")
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_cannot_open_conversation_with_self(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()

        with pytest.raises(InvalidRecipientError):
            await session.select_peer(TUTOR_ID)
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_leave_conversation_goes_idle(tutor_token):
    session = make_session(tutor_token)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        session.leave_conversation()

        assert session.active_peer is None
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_operations_before_start():
    session = make_session("whatever")
    try:
        assert session.get_messages_for(STUDENT_ID) == []
        assert session.get_unread_count(STUDENT_ID) == 0
        with pytest.raises(ViewerNotResolvedError):
            await session.select_peer(STUDENT_ID)
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_rejected_token_logs_out_and_notifies():
    rejected = []
    session = make_session("not-a-valid-token", on_auth_error=rejected.append)
    try:
        with pytest.raises(AuthError):
            await session.start()

        assert len(rejected) == 1
        assert session.session.token is None
        assert not session.session.is_authenticated
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_rejected_send_stops_polling_and_notifies_once(tutor_token):
    rejected = []
    session = make_session(tutor_token, interval_ms=20, on_auth_error=rejected.append)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        session.api.send_message = AsyncMock(side_effect=AuthError("expired"))

        with pytest.raises(AuthError):
            await session.send_to_active("hello")
        await asyncio.sleep(0.2)

        assert [str(e) for e in rejected] == ["expired"]
        assert session.active_peer is None
        assert session.sync_loop.get_status()["last_tick_status"] == "idle"
        assert not session._send_locks
        assert not session.session.is_authenticated
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_sends_to_one_peer_are_serialized(tutor_token, make_message):
    session = make_session(tutor_token)
    try:
        await session.start()
        await session.select_peer(STUDENT_ID)
        first_reply = asyncio.get_running_loop().create_future()
        started = []

        async def fake_send(receiver_id, content):
            started.append(content)
            if content == "first":
                return await first_reply
            return make_message(2, TUTOR_ID, receiver_id, content=content)

        session.api.send_message = fake_send

        first = asyncio.create_task(session.send_to_active("first"))
        second = asyncio.create_task(session.send_to_active("second"))
        await asyncio.sleep(0.05)

        assert started == ["first"]

        first_reply.set_result(make_message(1, TUTOR_ID, STUDENT_ID, content="first"))
        sent = await asyncio.gather(first, second)

        assert started == ["first", "second"]
        assert [m.id for m in sent] == [1, 2]
    finally:
        await session.close()


@pytest.mark.asyncio
async def test_close_stops_polling_and_drops_send_locks(tutor_token):
    session = make_session(tutor_token, interval_ms=20)
    await session.start()
    await session.select_peer(STUDENT_ID)
    await session.send_to_active("hello")

    await session.close()

    assert session.active_peer is None
    assert not session._send_locks
