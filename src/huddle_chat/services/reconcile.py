# src/huddle_chat/services/reconcile.py
"""Identity-based merging of provisional and authoritative messages.

An outgoing message can reach the visible list twice: once through the
direct persistence response and once through the live channel, in either
order and possibly through several channels. Every path folds messages in
with ``merge_message`` so the list keeps exactly one entry per logical
message.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence

from huddle_chat.db.time import utcnow
from huddle_chat.schemas import ChatMessage, DeliveryStatus, MediaFields, MessageType
from huddle_chat.services.delivery import advance


def is_pending_provisional(message: ChatMessage) -> bool:
    """Return True for an optimistic entry still waiting for its authoritative row."""
    return message.provisional and message.delivery_status is DeliveryStatus.SENDING


def same_logical_send(provisional: ChatMessage, incoming: ChatMessage) -> bool:
    """Return True if ``incoming`` looks like the persisted form of ``provisional``."""
    return (
        provisional.sender_id == incoming.sender_id
        and provisional.receiver_id == incoming.receiver_id
        and provisional.content == incoming.content
        and provisional.message_type == incoming.message_type
    )


def find_match(
    messages: Sequence[ChatMessage],
    incoming: ChatMessage,
    provisional_id: str | None = None,
) -> int | None:
    """Locate the entry ``incoming`` should replace.

    Match order: authoritative id, the provisional id supplied by the send
    pipeline, then the oldest pending provisional with the same sender,
    receiver, content and type.
    """
    for index, message in enumerate(messages):
        if message.id == incoming.id:
            return index
    if provisional_id is not None:
        for index, message in enumerate(messages):
            if message.id == provisional_id:
                return index
    for index, message in enumerate(messages):
        if is_pending_provisional(message) and same_logical_send(message, incoming):
            return index
    return None


def sort_messages(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    """Return messages in ascending timestamp order, keeping ties stable."""
    return sorted(messages, key=lambda message: message.timestamp)


def merge_message(
    messages: Sequence[ChatMessage],
    incoming: ChatMessage,
    provisional_id: str | None = None,
) -> list[ChatMessage]:
    """Fold an authoritative message into a visible list.

    A matching entry is replaced in place with the incoming row; its status
    keeps whichever of the two is further along. Without a match the
    message is appended. Redelivering the same row is a no-op.
    """
    merged = list(messages)
    index = find_match(merged, incoming, provisional_id)
    if index is None:
        merged.append(incoming)
    else:
        existing = merged[index]
        merged[index] = incoming.model_copy(
            update={
                "delivery_status": advance(existing.delivery_status, incoming.delivery_status),
                "provisional": False,
            }
        )

    if provisional_id is not None and provisional_id != incoming.id:
        merged = [message for message in merged if message.id != provisional_id]
    return sort_messages(merged)


def apply_status(
    messages: Sequence[ChatMessage],
    message_id: str,
    status: DeliveryStatus,
) -> tuple[list[ChatMessage], bool]:
    """Advance one message's status; unknown ids leave the list untouched.

    Returns:
        The resulting list and whether any entry changed
    """
    updated = list(messages)
    for index, message in enumerate(updated):
        if message.id != message_id:
            continue
        new_status = advance(message.delivery_status, status)
        if new_status is message.delivery_status:
            return updated, False
        updated[index] = message.model_copy(update={"delivery_status": new_status})
        return updated, True
    return updated, False


class ConversationView:
    """Client-side state of one open conversation.

    Owns the visible message list and the compose draft. Both the live
    channel and the send pipeline mutate the list, always through
    ``reconcile`` so entries are merged by identity.
    """

    def __init__(
        self,
        conversation_id: str,
        viewer_id: str,
        peer_id: str,
        messages: Iterable[ChatMessage] = (),
        *,
        provisional_prefix: str = "temp-",
    ) -> None:
        self.conversation_id = conversation_id
        self.viewer_id = viewer_id
        self.peer_id = peer_id
        self.draft = ""
        self._provisional_prefix = provisional_prefix
        self._messages: list[ChatMessage] = sort_messages(messages)

    @property
    def messages(self) -> list[ChatMessage]:
        """Return a snapshot of the visible list."""
        return list(self._messages)

    @property
    def pending(self) -> list[ChatMessage]:
        """Return provisional entries still waiting for the store."""
        return [message for message in self._messages if message.provisional]

    def find(self, message_id: str) -> ChatMessage | None:
        """Return the visible entry with ``message_id``, if any."""
        return next((m for m in self._messages if m.id == message_id), None)

    def add_provisional(
        self,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        media: MediaFields | None = None,
        reply_to: str | None = None,
    ) -> ChatMessage:
        """Append an optimistic outgoing message and return it."""
        attachment = media or MediaFields()
        provisional = ChatMessage(
            id=f"{self._provisional_prefix}{uuid.uuid4().hex}",
            conversation_id=self.conversation_id,
            sender_id=self.viewer_id,
            receiver_id=self.peer_id,
            content=content,
            encrypted_content=content,
            timestamp=utcnow(),
            message_type=message_type,
            delivery_status=DeliveryStatus.SENDING,
            reply_to=reply_to,
            provisional=True,
            **attachment.model_dump(),
        )
        self._messages.append(provisional)
        return provisional

    def reconcile(self, incoming: ChatMessage, provisional_id: str | None = None) -> ChatMessage:
        """Merge an authoritative message and return the visible entry for it."""
        self._messages = merge_message(self._messages, incoming, provisional_id)
        merged = self.find(incoming.id)
        return merged if merged is not None else incoming

    def apply_status(self, message_id: str, status: DeliveryStatus) -> bool:
        """Apply a status change; returns False for unknown ids or regressions."""
        self._messages, changed = apply_status(self._messages, message_id, status)
        return changed

    def discard(self, message_id: str) -> bool:
        """Remove an entry, returning True if it was present."""
        remaining = [message for message in self._messages if message.id != message_id]
        removed = len(remaining) != len(self._messages)
        self._messages = remaining
        return removed

    def replace_history(self, history: Iterable[ChatMessage]) -> None:
        """Reload from the store, keeping provisional entries that are still in flight.

        A row the view has not seen before takes the place of the oldest pending
        provisional for the same send, so a reload racing a send never shows both.
        """
        rows = list(history)
        known = {message.id for message in self._messages if not message.provisional}
        pending = self.pending
        for row in rows:
            if row.id in known:
                continue
            for index, provisional in enumerate(pending):
                if is_pending_provisional(provisional) and same_logical_send(provisional, row):
                    del pending[index]
                    break
        self._messages = sort_messages([*rows, *pending])
