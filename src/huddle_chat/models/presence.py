# src/huddle_chat/models/presence.py
"""Model tracking whether a user currently has the chat open."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, false
from sqlalchemy.orm import Mapped, mapped_column

from huddle_chat.db.session import Base
from huddle_chat.db.time import utcnow


class UserPresence(Base):
    """Online flag and last-seen time of a user."""

    __tablename__ = "user_presence"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
