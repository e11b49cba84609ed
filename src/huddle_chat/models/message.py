# src/huddle_chat/models/message.py
"""Models describing persisted chat messages and read receipts."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from huddle_chat.db.session import Base
from huddle_chat.db.time import utcnow


def new_message_id() -> str:
    """Return a fresh authoritative message identifier."""
    return uuid.uuid4().hex


class Message(Base):
    """Encrypted message exchanged inside a conversation.

    Only the ciphertext is stored; participants recompute the conversation key
    locally to read it back.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("ix_messages_receiver_status", "receiver_id", "delivery_status"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_message_id)
    conversation_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)

    encrypted_content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False, default="text")
    delivery_status: Mapped[str] = mapped_column(String(16), nullable=False, default="sending")
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Media attachment metadata; unset for text messages.
    file_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration: Mapped[float | None] = mapped_column(Float, nullable=True)

    reply_to: Mapped[str | None] = mapped_column(String(64), nullable=True)


class ReadReceipt(Base):
    """Record that a user has read a message."""

    __tablename__ = "message_read_receipts"

    # (message_id, user_id) -> existence means "already read".
    message_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("messages.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
