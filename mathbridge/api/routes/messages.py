"""
Direct messaging API endpoints
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from mathbridge.dependencies import get_current_user
from mathbridge.models.message import Message
from mathbridge.models.user import User
from mathbridge.schemas.message import ErrorResponse, MessageRequest, StatusResponse
from mathbridge.services.message_service import message_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["Messages"])

ERROR_RESPONSES = {status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}}


def _error(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@router.post(
    "/send",
    response_model=Message,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def send_message(
    payload: MessageRequest,
    current_user: User = Depends(get_current_user),
):
    """
    Send a direct message to another user.

    - **receiverId**: id of the recipient
    - **content**: message text, must not be blank
    """
    try:
        return await message_service.send_message(current_user.id, payload.receiver_id, payload.content)
    except ValueError as e:
        logger.warning(f"Rejected message from {current_user.id}: {e}")
        return _error(f"Failed to send message: {e}")


@router.get("/conversation/{other_user_id}", response_model=List[Message])
async def get_conversation(
    other_user_id: int,
    current_user: User = Depends(get_current_user),
):
    """
    Full message thread with another user, oldest first.
    """
    return await message_service.get_conversation(current_user.id, other_user_id)


@router.get("/unread", response_model=List[Message])
async def get_unread_messages(current_user: User = Depends(get_current_user)):
    """Messages addressed to the current user that are still unread, newest first"""
    return await message_service.get_unread_messages(current_user.id)


@router.get("/all", response_model=List[Message])
async def get_all_messages(current_user: User = Depends(get_current_user)):
    """Every message the current user sent or received, newest first"""
    return await message_service.get_all_messages(current_user.id)


@router.post("/mark-read/{other_user_id}", response_model=StatusResponse)
async def mark_conversation_as_read(
    other_user_id: int,
    current_user: User = Depends(get_current_user),
):
    """
    Mark all messages from another user to the current user as read.
    """
    await message_service.mark_conversation_as_read(current_user.id, other_user_id)
    return StatusResponse(message="Conversation marked as read")
