# src/huddle_chat/services/outbox.py
"""Optimistic send pipeline.

``submit`` shows the outgoing message immediately as a provisional entry and
persists it in the background. The authoritative row may come back through
the persistence call or through the live channel first; both paths merge by
identity, so the view ends with a single entry either way.
"""

from __future__ import annotations

import asyncio
import logging

from huddle_chat.schemas import ChatMessage, MediaFields, MessageType
from huddle_chat.services.reconcile import ConversationView
from huddle_chat.services.store import ChatStore, PersistenceError

logger = logging.getLogger(__name__)


class MessageSendError(RuntimeError):
    """Raised when a message could not be persisted.

    ``content`` holds the original text so the caller can offer a retry.
    """

    def __init__(self, content: str, reason: str) -> None:
        super().__init__(f"Message could not be sent: {reason}")
        self.content = content


class OptimisticSender:
    """Sends messages with immediate provisional display and rollback on failure."""

    def __init__(self, store: ChatStore) -> None:
        self._store = store

    def submit(
        self,
        view: ConversationView,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        media: MediaFields | None = None,
        reply_to: str | None = None,
    ) -> asyncio.Task[ChatMessage]:
        """Show ``content`` as a provisional message and persist it in the background.

        The draft is cleared and the provisional entry appended before this
        returns. Must be called from inside a running event loop.

        Raises:
            ValueError: If a text message has no content
        """
        text = content.strip() if message_type is MessageType.TEXT else content
        if message_type is MessageType.TEXT and not text:
            raise ValueError("Cannot send an empty message")

        view.draft = ""
        provisional = view.add_provisional(text, message_type, media, reply_to)
        return asyncio.create_task(
            self._persist(view, provisional, content, media, reply_to),
            name=f"send:{provisional.id}",
        )

    async def send(
        self,
        view: ConversationView,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        media: MediaFields | None = None,
        reply_to: str | None = None,
    ) -> ChatMessage:
        """Submit a message and wait for the authoritative result."""
        return await self.submit(view, content, message_type, media, reply_to)

    async def _persist(
        self,
        view: ConversationView,
        provisional: ChatMessage,
        composed: str,
        media: MediaFields | None,
        reply_to: str | None,
    ) -> ChatMessage:
        try:
            message = await asyncio.to_thread(
                self._store.append_message,
                view.conversation_id,
                provisional.sender_id,
                provisional.receiver_id,
                provisional.content,
                provisional.message_type,
                media,
                reply_to,
            )
        except PersistenceError as err:
            view.discard(provisional.id)
            # The draft gets back exactly what was typed, surrounding whitespace included.
            view.draft = composed
            logger.warning(
                "Send failed in conversation %s, restored draft: %s", view.conversation_id, err
            )
            raise MessageSendError(composed, str(err)) from err

        return view.reconcile(message, provisional_id=provisional.id)
