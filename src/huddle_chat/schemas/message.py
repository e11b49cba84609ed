"""Message-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DeliveryStatus(str, Enum):
    """Lifecycle stage of a message; only ever moves forward."""

    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        """Position of the status in the forward-only ordering."""
        return _STATUS_ORDER.index(self)

    def below(self) -> tuple[DeliveryStatus, ...]:
        """Return every status that precedes this one."""
        return _STATUS_ORDER[: self.rank]


_STATUS_ORDER: tuple[DeliveryStatus, ...] = (
    DeliveryStatus.SENDING,
    DeliveryStatus.SENT,
    DeliveryStatus.DELIVERED,
    DeliveryStatus.READ,
)


class MessageType(str, Enum):
    """Kinds of content a message can carry."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"
    LOCATION = "location"


class MediaFields(BaseModel):
    """Attachment metadata carried by non-text messages."""

    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    thumbnail_url: str | None = None
    duration: float | None = Field(default=None, ge=0)


class ChatMessage(MediaFields):
    """A message as held by a client: decrypted content plus routing data.

    Provisional messages carry a client-generated id until the store confirms
    them; see ``provisional``.
    """

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    content: str
    encrypted_content: str = ""
    timestamp: datetime
    message_type: MessageType = MessageType.TEXT
    delivery_status: DeliveryStatus = DeliveryStatus.SENDING
    reply_to: str | None = None
    provisional: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_read(self) -> bool:
        """Return True once the receiver has read the message."""
        return self.delivery_status is DeliveryStatus.READ


class MessageCreate(BaseModel):
    """Schema for sending a new message over the HTTP API."""

    conversation_id: str = Field(..., description="Target conversation id")
    receiver_id: str = Field(..., description="User id of the recipient")
    content: str = Field(..., min_length=1, description="Plaintext message body")
    message_type: MessageType = MessageType.TEXT
    media: MediaFields | None = None
    reply_to: str | None = None


class ReadReceiptRecord(BaseModel):
    """Read receipt joined on (message_id, user_id)."""

    message_id: str
    user_id: str
    read_at: datetime

    model_config = ConfigDict(from_attributes=True)
