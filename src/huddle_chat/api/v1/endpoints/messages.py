# src/huddle_chat/api/v1/endpoints/messages.py
"""Message endpoints for the chat API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from huddle_chat.schemas import ChatMessage, MessageCreate
from huddle_chat.services.outbox import MessageSendError

from ..dependencies import ChatClientDep, CurrentUserDep, require_participant

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/", status_code=status.HTTP_201_CREATED, response_model=ChatMessage)
async def send_message(
    message_data: MessageCreate,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> ChatMessage:
    """Send a message and return it as persisted."""
    participants = await require_participant(client, message_data.conversation_id, current_user)
    if message_data.receiver_id not in participants:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Receiver is not a participant of this conversation",
        )

    try:
        return await client.send_message(
            message_data.conversation_id,
            current_user,
            message_data.receiver_id,
            message_data.content,
            message_data.message_type,
            message_data.media,
            message_data.reply_to,
        )
    except MessageSendError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Message could not be sent",
        ) from exc
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc


@router.get("/unread-count")
async def unread_count(
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> dict[str, int]:
    """Return how many messages addressed to the current user are unread."""
    return {"unread_count": await client.unread_message_count(current_user)}


@router.post("/{message_id}/read")
async def mark_message_read(
    message_id: str,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> dict[str, str]:
    """Mark a message addressed to the current user as read."""
    if not await client.mark_message_read(message_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found",
        )
    return {"status": "marked_as_read"}
