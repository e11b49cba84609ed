# src/huddle_chat/api/v1/endpoints/stream.py
"""WebSocket stream of a conversation's new messages and status changes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from huddle_chat.core.security import InvalidTokenError, decode_access_token
from huddle_chat.schemas import ChatMessage, DeliveryStatus, StreamEnvelope
from huddle_chat.services.chat import ChatClient
from huddle_chat.services.store import ConversationNotFoundError

router = APIRouter(prefix="/ws", tags=["stream"])

logger = logging.getLogger(__name__)


async def _authorize(client: ChatClient, conversation_id: str, token: str) -> str | None:
    try:
        user_id = decode_access_token(token)
        participants = await client.participants(conversation_id)
    except (InvalidTokenError, ConversationNotFoundError):
        return None
    return user_id if user_id in participants else None


@router.websocket("/conversations/{conversation_id}")
async def stream_conversation(
    websocket: WebSocket,
    conversation_id: str,
    token: str = Query(...),
) -> None:
    """Push ``message.created`` and ``message.status`` events to a participant.

    Messages addressed to the connected user are acknowledged as delivered as
    soon as they are pushed, and the user counts as online while connected.
    Clients may send ``ping`` and receive a ``pong`` envelope back; any other
    inbound text is ignored.
    """
    client: ChatClient = websocket.app.state.chat_client
    user_id = await _authorize(client, conversation_id, token)
    if user_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    async def on_message(message: ChatMessage) -> None:
        envelope = StreamEnvelope(type="message.created", data=message.model_dump(mode="json"))
        await websocket.send_json(envelope.model_dump())
        if message.receiver_id == user_id:
            await client.mark_message_delivered(message.id, user_id)

    async def on_status(message_id: str, delivery_status: DeliveryStatus) -> None:
        envelope = StreamEnvelope(
            type="message.status",
            data={"id": message_id, "delivery_status": delivery_status.value},
        )
        await websocket.send_json(envelope.model_dump())

    unsubscribe = client.watch_conversation(conversation_id, on_message, on_status)
    await client.user_connected(user_id)
    logger.info("Stream opened for %s in %s", user_id, conversation_id)
    try:
        while True:
            text = await websocket.receive_text()
            if text == "ping":
                await websocket.send_json(StreamEnvelope(type="pong").model_dump())
    except WebSocketDisconnect:
        logger.info("Stream closed for %s in %s", user_id, conversation_id)
    finally:
        unsubscribe()
        await client.user_disconnected(user_id)
