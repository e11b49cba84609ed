"""Conversation-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from .message import ChatMessage


class ConversationOpen(BaseModel):
    """Request to open (look up or create) a direct conversation."""

    peer_id: str = Field(..., min_length=1, description="User id of the other participant")


class ConversationOpened(BaseModel):
    """Response carrying the id of an opened conversation."""

    conversation_id: str


class ConversationSummary(BaseModel):
    """Conversation list entry annotated with its most recent message."""

    id: str
    participants: list[str]
    last_message: ChatMessage | None = None
    last_activity: datetime
    is_group: bool = False
    group_name: str | None = None
    group_image: str | None = None
    unread_count: int = Field(default=0, ge=0)

    def peer_of(self, user_id: str) -> str | None:
        """Return the first participant that is not ``user_id``."""
        return next((p for p in self.participants if p != user_id), None)
