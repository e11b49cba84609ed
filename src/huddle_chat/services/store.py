# src/huddle_chat/services/store.py
"""Conversation and message persistence.

``ChatStore`` translates chat operations into row operations on the
``conversations``, ``messages``, ``message_read_receipts`` and ``user_presence``
tables and publishes every committed message change to the ``ChangeFeed``.
Methods are synchronous and open one session per call; async callers run
them through ``asyncio.to_thread``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from huddle_chat.db.time import as_utc, utcnow
from huddle_chat.models import (
    Conversation,
    ConversationParticipant,
    Message,
    ReadReceipt,
    UserPresence,
)
from huddle_chat.models.conversation import participants_key
from huddle_chat.schemas import (
    ChatMessage,
    ConversationSummary,
    DeliveryStatus,
    MediaFields,
    MessageType,
    PresenceRecord,
    ReadReceiptRecord,
)
from huddle_chat.services.change_feed import ChangeEvent, ChangeFeed, ChangeType
from huddle_chat.services.codec import MessageCodec
from huddle_chat.services.keys import derive_chat_key

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"


class PersistenceError(RuntimeError):
    """Raised when the chat store cannot complete a read or write."""


class ConversationNotFoundError(PersistenceError):
    """Raised when an operation references an unknown conversation."""


def message_payload(row: Message) -> dict[str, Any]:
    """Return the column values of a message row as published on the change feed."""
    return {
        "id": row.id,
        "conversation_id": row.conversation_id,
        "sender_id": row.sender_id,
        "receiver_id": row.receiver_id,
        "encrypted_content": row.encrypted_content,
        "message_type": row.message_type,
        "delivery_status": row.delivery_status,
        "timestamp": as_utc(row.timestamp),
        "file_url": row.file_url,
        "file_name": row.file_name,
        "file_size": row.file_size,
        "thumbnail_url": row.thumbnail_url,
        "duration": row.duration,
        "reply_to": row.reply_to,
    }


def decode_message_row(row: Mapping[str, Any], codec: MessageCodec) -> ChatMessage:
    """Build a client-side message from raw row values, decrypting its content."""
    encrypted = row.get("encrypted_content") or ""
    key = derive_chat_key(row["sender_id"], row["receiver_id"])
    timestamp = row["timestamp"]
    if isinstance(timestamp, str):
        timestamp = datetime.fromisoformat(timestamp)
    return ChatMessage(
        id=row["id"],
        conversation_id=row["conversation_id"],
        sender_id=row["sender_id"],
        receiver_id=row["receiver_id"],
        content=codec.decrypt(encrypted, key),
        encrypted_content=encrypted,
        timestamp=as_utc(timestamp),
        message_type=MessageType(row.get("message_type") or MessageType.TEXT.value),
        delivery_status=DeliveryStatus(row.get("delivery_status") or DeliveryStatus.SENDING.value),
        file_url=row.get("file_url"),
        file_name=row.get("file_name"),
        file_size=row.get("file_size"),
        thumbnail_url=row.get("thumbnail_url"),
        duration=row.get("duration"),
        reply_to=row.get("reply_to"),
    )


class ChatStore:
    """Row-level adapter for conversations, messages and read receipts."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        codec: MessageCodec,
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._codec = codec
        self._feed = feed

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as err:
            db.rollback()
            raise PersistenceError(f"Chat store operation failed: {err}") from err
        finally:
            db.close()

    def _publish(self, change_type: ChangeType, payload: Mapping[str, Any]) -> None:
        if self._feed is not None:
            self._feed.publish(ChangeEvent(MESSAGES_TABLE, change_type, payload))

    # Conversations

    @staticmethod
    def _find_direct(db: Session, key: str) -> str | None:
        conversation = (
            db.query(Conversation)
            .filter(
                Conversation.participants_key == key,
                Conversation.is_group.is_(False),
            )
            .first()
        )
        return conversation.id if conversation else None

    def find_or_create_conversation(self, user_a: str, user_b: str) -> str:
        """Return the direct conversation between two users, creating it if needed.

        A unique index on the sorted participant key backs the lookup, so a
        concurrent creator that loses the race gets the winner's id.

        Raises:
            ValueError: If either user id is empty
            PersistenceError: If the store cannot be reached
        """
        if not user_a or not user_b:
            raise ValueError("Both participant ids are required")

        key = participants_key((user_a, user_b))
        with self._session() as db:
            existing = self._find_direct(db, key)
            if existing is not None:
                return existing

            conversation = Conversation(
                participants_key=key,
                is_group=False,
                last_activity=utcnow(),
            )
            conversation.participants = [
                ConversationParticipant(user_id=user_id) for user_id in sorted({user_a, user_b})
            ]
            db.add(conversation)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                winner = self._find_direct(db, key)
                if winner is None:
                    raise
                logger.info("Conversation for %s was created concurrently; reusing %s", key, winner)
                return winner

            logger.info("Created conversation %s", conversation.id)
            return conversation.id

    def conversation_participants(self, conversation_id: str) -> list[str]:
        """Return the sorted participant ids of a conversation.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
        """
        with self._session() as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")
            return conversation.participant_ids

    def list_conversations(self, user_id: str) -> list[ConversationSummary]:
        """Return the user's conversations, most recently active first."""
        with self._session() as db:
            conversations = (
                db.query(Conversation)
                .join(ConversationParticipant)
                .filter(ConversationParticipant.user_id == user_id)
                .order_by(Conversation.last_activity.desc(), Conversation.created_at.desc())
                .all()
            )
            if not conversations:
                return []

            conversation_ids = [conversation.id for conversation in conversations]
            last_ids = [c.last_message_id for c in conversations if c.last_message_id]
            last_messages: dict[str, Message] = {}
            if last_ids:
                last_messages = {
                    row.id: row for row in db.query(Message).filter(Message.id.in_(last_ids)).all()
                }

            unread_counts: dict[str, int] = dict(
                db.query(Message.conversation_id, func.count(Message.id))
                .filter(
                    Message.conversation_id.in_(conversation_ids),
                    Message.receiver_id == user_id,
                    Message.delivery_status != DeliveryStatus.READ.value,
                )
                .group_by(Message.conversation_id)
                .all()
            )

            summaries = []
            for conversation in conversations:
                last_row = last_messages.get(conversation.last_message_id or "")
                summaries.append(
                    ConversationSummary(
                        id=conversation.id,
                        participants=conversation.participant_ids,
                        last_message=(
                            decode_message_row(message_payload(last_row), self._codec)
                            if last_row is not None
                            else None
                        ),
                        last_activity=as_utc(conversation.last_activity),
                        is_group=conversation.is_group,
                        group_name=conversation.group_name,
                        group_image=conversation.group_image,
                        unread_count=unread_counts.get(conversation.id, 0),
                    )
                )
            return summaries

    # Messages

    def list_messages(self, conversation_id: str) -> list[ChatMessage]:
        """Return the full history of a conversation in ascending timestamp order."""
        with self._session() as db:
            rows = (
                db.query(Message)
                .filter(Message.conversation_id == conversation_id)
                .order_by(Message.timestamp.asc(), Message.id.asc())
                .all()
            )
            payloads = [message_payload(row) for row in rows]
        return [decode_message_row(payload, self._codec) for payload in payloads]

    def get_message(self, message_id: str) -> ChatMessage | None:
        """Return a single message, or None if it does not exist."""
        with self._session() as db:
            row = db.get(Message, message_id)
            payload = message_payload(row) if row is not None else None
        return decode_message_row(payload, self._codec) if payload is not None else None

    def append_message(
        self,
        conversation_id: str,
        sender_id: str,
        receiver_id: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        media: MediaFields | None = None,
        reply_to: str | None = None,
    ) -> ChatMessage:
        """Encrypt and persist a message, then acknowledge it as ``sent``.

        The row is inserted as ``sending`` and published as an INSERT; the
        acknowledgement that follows is published as an UPDATE.

        Raises:
            ConversationNotFoundError: If the conversation does not exist
            PersistenceError: If the write is rejected or the store is unreachable
        """
        encrypted = self._codec.encrypt(content, derive_chat_key(sender_id, receiver_id))
        attachment = media or MediaFields()

        with self._session() as db:
            conversation = db.get(Conversation, conversation_id)
            if conversation is None:
                raise ConversationNotFoundError(f"Conversation {conversation_id} not found")

            row = Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                receiver_id=receiver_id,
                encrypted_content=encrypted,
                message_type=MessageType(message_type).value,
                delivery_status=DeliveryStatus.SENDING.value,
                timestamp=utcnow(),
                reply_to=reply_to,
                **attachment.model_dump(),
            )
            db.add(row)
            db.flush()

            conversation.last_activity = row.timestamp
            conversation.last_message_id = row.id
            db.commit()
            payload = message_payload(row)

        logger.debug("Persisted message %s in conversation %s", payload["id"], conversation_id)
        self._publish(ChangeType.INSERT, payload)

        try:
            if self.advance_status([payload["id"]], DeliveryStatus.SENT):
                payload = {**payload, "delivery_status": DeliveryStatus.SENT.value}
            else:
                # The receiver already moved it past ``sent``.
                current = self.get_message(payload["id"])
                if current is not None:
                    return current
        except PersistenceError as err:
            logger.warning("Could not acknowledge message %s as sent: %s", payload["id"], err)

        return decode_message_row(payload, self._codec)

    def advance_status(self, message_ids: Sequence[str], status: DeliveryStatus) -> list[str]:
        """Move messages forward to ``status``; rows already at or past it are left alone.

        Returns:
            Ids of the rows that changed, each published as an UPDATE
        """
        if not message_ids:
            return []

        lower = [earlier.value for earlier in status.below()]
        with self._session() as db:
            candidates = [
                message_id
                for (message_id,) in db.query(Message.id)
                .filter(Message.id.in_(list(message_ids)), Message.delivery_status.in_(lower))
                .all()
            ]
            changed = []
            for message_id in candidates:
                # Conditional per row so a concurrent later status is never overwritten.
                result = db.execute(
                    update(Message)
                    .where(Message.id == message_id, Message.delivery_status.in_(lower))
                    .values(delivery_status=status.value)
                )
                if result.rowcount:
                    changed.append(message_id)
            db.commit()

            payloads = []
            if changed:
                rows = db.query(Message).filter(Message.id.in_(changed)).all()
                payloads = [message_payload(row) for row in rows]

        for payload in payloads:
            self._publish(ChangeType.UPDATE, payload)
        return [payload["id"] for payload in payloads]

    def unread_message_ids(self, conversation_id: str, user_id: str) -> list[str]:
        """Return ids of messages addressed to ``user_id`` that are not yet read."""
        with self._session() as db:
            return [
                message_id
                for (message_id,) in db.query(Message.id)
                .filter(
                    Message.conversation_id == conversation_id,
                    Message.receiver_id == user_id,
                    Message.delivery_status != DeliveryStatus.READ.value,
                )
                .order_by(Message.timestamp.asc())
                .all()
            ]

    def undelivered_message_ids(self, user_id: str) -> list[str]:
        """Return ids of messages addressed to ``user_id`` still at ``sent``."""
        with self._session() as db:
            return [
                message_id
                for (message_id,) in db.query(Message.id)
                .filter(
                    Message.receiver_id == user_id,
                    Message.delivery_status == DeliveryStatus.SENT.value,
                )
                .order_by(Message.timestamp.asc())
                .all()
            ]

    def unread_message_count(self, user_id: str) -> int:
        """Return how many messages addressed to ``user_id`` are unread."""
        with self._session() as db:
            count = (
                db.query(func.count(Message.id))
                .filter(
                    Message.receiver_id == user_id,
                    Message.delivery_status != DeliveryStatus.READ.value,
                )
                .scalar()
            )
            return int(count or 0)

    # Read receipts

    def record_read_receipts(
        self,
        message_ids: Sequence[str],
        user_id: str,
        read_at: datetime | None = None,
    ) -> int:
        """Upsert read receipts; pairs that already exist are left untouched.

        Returns:
            Number of receipts created by this call
        """
        if not message_ids:
            return 0

        stamp = read_at or utcnow()
        with self._session() as db:
            existing = {
                message_id
                for (message_id,) in db.query(ReadReceipt.message_id)
                .filter(
                    ReadReceipt.user_id == user_id,
                    ReadReceipt.message_id.in_(list(message_ids)),
                )
                .all()
            }
            created = 0
            for message_id in dict.fromkeys(message_ids):
                if message_id in existing:
                    continue
                db.add(ReadReceipt(message_id=message_id, user_id=user_id, read_at=stamp))
                try:
                    db.commit()
                except IntegrityError:
                    # Another writer recorded the same pair first.
                    db.rollback()
                    continue
                created += 1
            return created

    def read_receipts(self, message_id: str) -> list[ReadReceiptRecord]:
        """Return every read receipt recorded for a message."""
        with self._session() as db:
            rows = (
                db.query(ReadReceipt)
                .filter(ReadReceipt.message_id == message_id)
                .order_by(ReadReceipt.read_at.asc())
                .all()
            )
            return [
                ReadReceiptRecord(
                    message_id=row.message_id,
                    user_id=row.user_id,
                    read_at=as_utc(row.read_at),
                )
                for row in rows
            ]

    # Presence

    def set_online_status(self, user_id: str, is_online: bool) -> PresenceRecord:
        """Record whether a user is online and stamp ``last_seen``.

        A user coming online acknowledges every ``sent`` message addressed to
        them as ``delivered``.

        Raises:
            PersistenceError: If the store cannot be reached
        """
        stamp = utcnow()
        with self._session() as db:
            row = db.get(UserPresence, user_id)
            was_online = row is not None and row.is_online
            if row is None:
                row = UserPresence(user_id=user_id)
                db.add(row)
            row.is_online = is_online
            row.last_seen = stamp
            try:
                db.commit()
            except IntegrityError:
                # Another writer created the row first; update theirs.
                db.rollback()
                row = db.get(UserPresence, user_id)
                if row is None:
                    raise
                was_online = row.is_online
                row.is_online = is_online
                row.last_seen = stamp
                db.commit()
            record = PresenceRecord(
                user_id=row.user_id,
                is_online=row.is_online,
                last_seen=as_utc(row.last_seen),
            )

        if is_online and not was_online:
            delivered = self.advance_status(
                self.undelivered_message_ids(user_id), DeliveryStatus.DELIVERED
            )
            if delivered:
                logger.info("Marked %d messages delivered for %s", len(delivered), user_id)
        return record

    def get_presence(self, user_id: str) -> PresenceRecord | None:
        """Return a user's presence, or None if they have never connected."""
        with self._session() as db:
            row = db.get(UserPresence, user_id)
            if row is None:
                return None
            return PresenceRecord(
                user_id=row.user_id,
                is_online=row.is_online,
                last_seen=as_utc(row.last_seen),
            )
