# src/huddle_chat/api/v1/endpoints/conversations.py
"""Conversation endpoints for the chat API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from huddle_chat.schemas import (
    ChatMessage,
    ConversationOpen,
    ConversationOpened,
    ConversationSummary,
)
from huddle_chat.services.store import PersistenceError

from ..dependencies import ChatClientDep, CurrentUserDep, require_participant

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("/", response_model=ConversationOpened)
async def open_conversation(
    payload: ConversationOpen,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> ConversationOpened:
    """Open the direct conversation with a peer, creating it on first use."""
    try:
        conversation_id = await client.open_conversation(current_user, payload.peer_id)
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Conversation could not be opened",
        ) from exc
    return ConversationOpened(conversation_id=conversation_id)


@router.get("/", response_model=list[ConversationSummary])
async def list_conversations(
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> list[ConversationSummary]:
    """List the current user's conversations, most recently active first."""
    return await client.list_conversations(current_user)


@router.get("/{conversation_id}/messages", response_model=list[ChatMessage])
async def list_messages(
    conversation_id: str,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> list[ChatMessage]:
    """Return a conversation's history, oldest first."""
    await require_participant(client, conversation_id, current_user)
    return await client.list_messages(conversation_id)


@router.post("/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: str,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> dict[str, str]:
    """Mark every message addressed to the current user as read."""
    await require_participant(client, conversation_id, current_user)
    await client.mark_conversation_read(conversation_id, current_user)
    return {"status": "marked_as_read"}
