# src/huddle_chat/services/live.py
"""Live update channels for conversations and the conversation list."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from huddle_chat.schemas import ChatMessage, DeliveryStatus
from huddle_chat.services.change_feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from huddle_chat.services.codec import MessageCodec
from huddle_chat.services.delivery import DeliveryTracker
from huddle_chat.services.reconcile import ConversationView
from huddle_chat.services.store import MESSAGES_TABLE, decode_message_row

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]
MessageHandler = Callable[[ChatMessage], Awaitable[None] | None]
StatusHandler = Callable[[str, DeliveryStatus], Awaitable[None] | None]


async def _invoke(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


def _releaser(*subscriptions: Subscription) -> Unsubscribe:
    def unsubscribe() -> None:
        for subscription in subscriptions:
            subscription.release()

    return unsubscribe


class LiveUpdateReconciler:
    """Turns raw change events into decoded messages and status changes."""

    def __init__(
        self,
        feed: ChangeFeed,
        codec: MessageCodec,
        tracker: DeliveryTracker | None = None,
    ) -> None:
        self._feed = feed
        self._codec = codec
        self._tracker = tracker

    def watch_conversation(
        self,
        conversation_id: str,
        on_message: MessageHandler,
        on_status_change: StatusHandler,
    ) -> Unsubscribe:
        """Stream inserts and status updates for one conversation.

        Inserts and updates share a single channel so a status change is never
        handled before the insert it refers to.
        """

        async def handle(event: ChangeEvent) -> None:
            if event.type is ChangeType.INSERT:
                await _invoke(on_message, decode_message_row(event.new, self._codec))
                return
            status = event.new.get("delivery_status")
            if status is None:
                return
            await _invoke(on_status_change, event.new["id"], DeliveryStatus(status))

        subscription = self._feed.subscribe(
            MESSAGES_TABLE,
            handle,
            where={"conversation_id": conversation_id},
            events=(ChangeType.INSERT, ChangeType.UPDATE),
        )
        logger.debug("Watching conversation %s", conversation_id)
        return _releaser(subscription)

    def watch_all_conversations(self, user_id: str, on_any_message: MessageHandler) -> Unsubscribe:
        """Stream every new message the user sends or receives, in any conversation."""

        async def handle(event: ChangeEvent) -> None:
            if user_id not in (event.new.get("sender_id"), event.new.get("receiver_id")):
                return
            await _invoke(on_any_message, decode_message_row(event.new, self._codec))

        subscription = self._feed.subscribe(MESSAGES_TABLE, handle, events=(ChangeType.INSERT,))
        return _releaser(subscription)

    def attach(self, view: ConversationView) -> Unsubscribe:
        """Fold a conversation's live channel into ``view``.

        Messages addressed to the viewer are acknowledged as delivered.
        """

        async def on_message(message: ChatMessage) -> None:
            view.reconcile(message)
            if self._tracker is not None and message.receiver_id == view.viewer_id:
                await self._tracker.mark_delivered(message.id, view.viewer_id)

        def on_status_change(message_id: str, status: DeliveryStatus) -> None:
            if not view.apply_status(message_id, status):
                logger.debug("Ignored %s status for %s", status.value, message_id)

        return self.watch_conversation(view.conversation_id, on_message, on_status_change)
