# src/huddle_chat/services/chat.py
"""Client-facing chat operations.

``ChatContext`` bundles every collaborator the chat layer needs and is built
explicitly from ``Settings``; signing out means closing the context and
building a new one. ``ChatClient`` exposes the operations views call.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from huddle_chat.core.settings import Settings
from huddle_chat.db.session import build_engine, create_session_factory, create_tables
from huddle_chat.schemas import (
    ChatMessage,
    ConversationSummary,
    MediaFields,
    MessageType,
    PresenceRecord,
)
from huddle_chat.services.change_feed import ChangeFeed
from huddle_chat.services.codec import MessageCodec
from huddle_chat.services.delivery import DeliveryTracker
from huddle_chat.services.live import LiveUpdateReconciler, MessageHandler, StatusHandler, Unsubscribe
from huddle_chat.services.media import MediaStorage, media_label
from huddle_chat.services.outbox import OptimisticSender
from huddle_chat.services.reconcile import ConversationView
from huddle_chat.services.store import ChatStore, PersistenceError

logger = logging.getLogger(__name__)


@dataclass
class ChatContext:
    """Application context shared by everything that touches chat state."""

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    feed: ChangeFeed
    codec: MessageCodec
    store: ChatStore
    tracker: DeliveryTracker
    reconciler: LiveUpdateReconciler
    sender: OptimisticSender
    media: MediaStorage

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        engine: Engine | None = None,
        create_schema: bool = True,
    ) -> ChatContext:
        """Wire up a context from settings.

        Args:
            settings: Application settings
            engine: Optional engine to reuse instead of building one from
                ``settings.database_url``
            create_schema: Create missing tables on the engine
        """
        engine = engine or build_engine(settings.database_url, echo=settings.sql_debug)
        if create_schema:
            create_tables(engine)

        session_factory = create_session_factory(engine)
        feed = ChangeFeed()
        codec = MessageCodec(enabled=settings.chat_encryption_enabled)
        store = ChatStore(session_factory, codec, feed)
        tracker = DeliveryTracker(store)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=session_factory,
            feed=feed,
            codec=codec,
            store=store,
            tracker=tracker,
            reconciler=LiveUpdateReconciler(feed, codec, tracker),
            sender=OptimisticSender(store),
            media=MediaStorage.from_settings(settings),
        )

    def close(self) -> None:
        """Release every live channel and the database engine."""
        self.feed.close()
        self.engine.dispose()


class ChatClient:
    """Facade over the chat context used by views and the HTTP layer."""

    def __init__(self, context: ChatContext) -> None:
        self.context = context
        self._views: dict[tuple[str, str], tuple[ConversationView, Unsubscribe]] = {}
        self._connections: Counter[str] = Counter()

    # Conversations

    async def open_conversation(self, user_a: str, user_b: str) -> str:
        """Return the direct conversation between two users, creating it on first use."""
        return await asyncio.to_thread(
            self.context.store.find_or_create_conversation, user_a, user_b
        )

    async def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        """Return the user's conversations, most recently active first."""
        return await asyncio.to_thread(self.context.store.list_conversations, user_id)

    async def participants(self, conversation_id: str) -> list[str]:
        """Return the participant ids of a conversation."""
        return await asyncio.to_thread(self.context.store.conversation_participants, conversation_id)

    async def list_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Return a conversation's decrypted history in ascending timestamp order."""
        return await asyncio.to_thread(self.context.store.list_messages, conversation_id)

    # Views

    async def open_view(self, conversation_id: str, viewer_id: str) -> ConversationView:
        """Open (or return the already open) view of a conversation for ``viewer_id``.

        The live channel is attached before history is loaded so no message
        committed in between is missed.

        Raises:
            PermissionError: If the viewer does not participate in the conversation
        """
        key = (conversation_id, viewer_id)
        if key in self._views:
            return self._views[key][0]

        participants = await self.participants(conversation_id)
        if viewer_id not in participants:
            raise PermissionError(f"{viewer_id} is not a participant of {conversation_id}")
        # Another caller may have opened the view while participants loaded.
        if key in self._views:
            return self._views[key][0]
        peer_id = next((p for p in participants if p != viewer_id), viewer_id)

        view = ConversationView(
            conversation_id,
            viewer_id,
            peer_id,
            provisional_prefix=self.context.settings.provisional_id_prefix,
        )
        unsubscribe = self.context.reconciler.attach(view)
        self._views[key] = (view, unsubscribe)
        try:
            await self.refresh_view(view)
        except Exception:
            self.close_view(conversation_id, viewer_id)
            raise
        return view

    async def refresh_view(self, view: ConversationView) -> None:
        """Reload a view's history, e.g. after the live channel reconnects."""
        view.replace_history(await self.list_messages(view.conversation_id))

    def get_view(self, conversation_id: str, viewer_id: str) -> ConversationView | None:
        """Return an open view, if any."""
        entry = self._views.get((conversation_id, viewer_id))
        return entry[0] if entry else None

    def close_view(self, conversation_id: str, viewer_id: str) -> None:
        """Release a view's live channel. Closing an unknown view is a no-op."""
        entry = self._views.pop((conversation_id, viewer_id), None)
        if entry is not None:
            entry[1]()

    # Messages

    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        media: MediaFields | None = None,
        reply_to: str | None = None,
    ) -> ChatMessage:
        """Send through the optimistic pipeline and return the authoritative message.

        Uses the sender's open view when there is one, otherwise a detached
        view that lives only for this call.

        Raises:
            MessageSendError: If persistence fails
        """
        view = self.get_view(conversation_id, sender_id) or ConversationView(
            conversation_id,
            sender_id,
            receiver_id,
            provisional_prefix=self.context.settings.provisional_id_prefix,
        )
        return await self.context.sender.send(view, content, message_type, media, reply_to)

    async def send_media_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        file_name: str,
        data: bytes,
        message_type: MessageType,
        duration: float | None = None,
    ) -> ChatMessage:
        """Upload an attachment, then send it as a media message."""
        uploaded = await self.context.media.upload(conversation_id, file_name, data, message_type)
        media = MediaFields(
            file_url=uploaded.file_url,
            file_name=file_name,
            file_size=len(data),
            thumbnail_url=uploaded.thumbnail_url,
            duration=duration,
        )
        return await self.send_message(
            conversation_id,
            sender_id,
            receiver_id,
            media_label(message_type, file_name),
            message_type,
            media,
        )

    async def mark_conversation_read(self, conversation_id: str, user_id: str) -> None:
        """Record receipts and mark everything addressed to ``user_id`` as read."""
        await self.context.tracker.mark_read(conversation_id, user_id)

    async def mark_message_read(self, message_id: str, user_id: str) -> bool:
        """Mark a single message read on behalf of its receiver."""
        return await self.context.tracker.mark_message_read(message_id, user_id)

    async def mark_message_delivered(self, message_id: str, user_id: str) -> bool:
        """Acknowledge that a message reached its receiver over a live channel."""
        return await self.context.tracker.mark_delivered(message_id, user_id)

    async def unread_message_count(self, user_id: str) -> int:
        """Return the number of unread messages addressed to ``user_id``."""
        return await asyncio.to_thread(self.context.store.unread_message_count, user_id)

    # Presence

    async def set_online_status(self, user_id: str, is_online: bool) -> PresenceRecord | None:
        """Record a user's online flag. Store failures are logged and return None."""
        try:
            return await asyncio.to_thread(
                self.context.store.set_online_status, user_id, is_online
            )
        except PersistenceError as err:
            logger.warning("Failed to update online status of %s: %s", user_id, err)
            return None

    async def get_presence(self, user_id: str) -> PresenceRecord | None:
        """Return a user's presence, or None if they have never connected."""
        return await asyncio.to_thread(self.context.store.get_presence, user_id)

    async def user_connected(self, user_id: str) -> None:
        """Count a live connection; the first one marks the user online."""
        self._connections[user_id] += 1
        if self._connections[user_id] == 1:
            await self.set_online_status(user_id, True)

    async def user_disconnected(self, user_id: str) -> None:
        """Drop a live connection; the last one marks the user offline."""
        if self._connections[user_id] <= 0:
            return
        self._connections[user_id] -= 1
        if self._connections[user_id] == 0:
            del self._connections[user_id]
            await self.set_online_status(user_id, False)

    # Live channels

    def watch_conversation(
        self,
        conversation_id: str,
        on_message: MessageHandler,
        on_status_change: StatusHandler,
    ) -> Unsubscribe:
        """Subscribe to one conversation's inserts and status changes."""
        return self.context.reconciler.watch_conversation(
            conversation_id, on_message, on_status_change
        )

    def watch_all_conversations(self, user_id: str, on_any_message: MessageHandler) -> Unsubscribe:
        """Subscribe to every new message involving ``user_id``."""
        return self.context.reconciler.watch_all_conversations(user_id, on_any_message)

    def close(self) -> None:
        """Close every open view."""
        for conversation_id, viewer_id in list(self._views):
            self.close_view(conversation_id, viewer_id)
        logger.debug("Chat client closed")
