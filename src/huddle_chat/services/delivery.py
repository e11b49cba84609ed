# src/huddle_chat/services/delivery.py
"""Delivery status transitions and read receipt bookkeeping."""

from __future__ import annotations

import asyncio
import logging

from huddle_chat.schemas import DeliveryStatus
from huddle_chat.services.store import ChatStore, PersistenceError

logger = logging.getLogger(__name__)


def advance(current: DeliveryStatus, incoming: DeliveryStatus) -> DeliveryStatus:
    """Return the later of two statuses; a message never moves backwards."""
    return incoming if incoming.rank > current.rank else current


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    """Return True if ``target`` lies strictly ahead of ``current``."""
    return target.rank > current.rank


class DeliveryTracker:
    """Records receipts and drives store-side status transitions.

    Failures here only delay a status indicator, so they are logged and
    swallowed instead of being raised to the caller.
    """

    def __init__(self, store: ChatStore) -> None:
        self._store = store

    async def mark_read(self, conversation_id: str, user_id: str) -> list[str]:
        """Mark every message addressed to ``user_id`` in a conversation as read.

        Returns:
            Ids of the messages that advanced to ``read``
        """
        try:
            unread = await asyncio.to_thread(
                self._store.unread_message_ids, conversation_id, user_id
            )
            if not unread:
                return []
            await asyncio.to_thread(self._store.record_read_receipts, unread, user_id)
            changed = await asyncio.to_thread(
                self._store.advance_status, unread, DeliveryStatus.READ
            )
        except PersistenceError as err:
            logger.warning(
                "Failed to record read receipts in %s for %s: %s", conversation_id, user_id, err
            )
            return []

        logger.debug("Marked %d messages read in %s", len(changed), conversation_id)
        return changed

    async def mark_message_read(self, message_id: str, user_id: str) -> bool:
        """Mark a single message read on behalf of its receiver.

        Returns:
            False if the message is unknown, ``user_id`` is not its receiver,
            or the store failed; True otherwise, including repeat reads
        """
        try:
            message = await asyncio.to_thread(self._store.get_message, message_id)
            if message is None or message.receiver_id != user_id:
                logger.debug("Ignoring read of %s by non-receiver %s", message_id, user_id)
                return False
            await asyncio.to_thread(self._store.record_read_receipts, [message_id], user_id)
            await asyncio.to_thread(self._store.advance_status, [message_id], DeliveryStatus.READ)
        except PersistenceError as err:
            logger.warning("Failed to mark message %s read: %s", message_id, err)
            return False
        return True

    async def mark_delivered(self, message_id: str, user_id: str) -> bool:
        """Acknowledge that a message reached its receiver's live channel."""
        try:
            message = await asyncio.to_thread(self._store.get_message, message_id)
            if message is None or message.receiver_id != user_id:
                return False
            if not can_transition(message.delivery_status, DeliveryStatus.DELIVERED):
                return False
            changed = await asyncio.to_thread(
                self._store.advance_status, [message_id], DeliveryStatus.DELIVERED
            )
        except PersistenceError as err:
            logger.warning("Failed to mark message %s delivered: %s", message_id, err)
            return False
        return bool(changed)
