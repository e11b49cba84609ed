# src/huddle_chat/models/conversation.py
"""Models describing conversations and their participants."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from huddle_chat.db.session import Base
from huddle_chat.db.time import utcnow

PARTICIPANT_KEY_SEPARATOR = ","


def participants_key(participant_ids: list[str] | tuple[str, ...]) -> str:
    """Return the order-independent lookup key for a participant set."""
    return PARTICIPANT_KEY_SEPARATOR.join(sorted(participant_ids))


def new_conversation_id() -> str:
    """Return a fresh opaque conversation identifier."""
    return uuid.uuid4().hex


class Conversation(Base):
    """A persistent thread between a fixed set of participants."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_conversation_id)
    participants_key: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    group_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    group_image: Mapped[str | None] = mapped_column(Text, nullable=True)

    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    # Plain pointer; messages reference conversations, not the other way round.
    last_message_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    participants: Mapped[list[ConversationParticipant]] = relationship(
        "ConversationParticipant",
        back_populates="conversation",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def participant_ids(self) -> list[str]:
        """Return participant user ids in sorted order."""
        return sorted(participant.user_id for participant in self.participants)


class ConversationParticipant(Base):
    """Membership row linking a user to a conversation."""

    __tablename__ = "conversation_participants"

    conversation_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)

    conversation: Mapped[Conversation] = relationship("Conversation", back_populates="participants")


# At most one direct (non-group) conversation per unordered pair.
Index(
    "uq_conversations_direct_pair",
    Conversation.participants_key,
    unique=True,
    sqlite_where=Conversation.is_group == false(),
    postgresql_where=Conversation.is_group == false(),
)
