"""WebSocket envelope models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class StreamEnvelope(BaseModel):
    """Server -> client event on a conversation stream."""

    type: str  # message.created | message.status | pong
    data: dict[str, Any] = {}
