"""Presence schema."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class PresenceRecord(BaseModel):
    """Whether a user is online, and when they were last seen."""

    user_id: str
    is_online: bool
    last_seen: datetime

    model_config = ConfigDict(from_attributes=True)
