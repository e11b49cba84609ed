"""Pydantic schemas shared by the services and the HTTP API."""

from .conversation import ConversationOpen, ConversationOpened, ConversationSummary
from .message import (
    ChatMessage,
    DeliveryStatus,
    MediaFields,
    MessageCreate,
    MessageType,
    ReadReceiptRecord,
)
from .presence import PresenceRecord
from .stream import StreamEnvelope

__all__ = [
    "ChatMessage",
    "ConversationOpen",
    "ConversationOpened",
    "ConversationSummary",
    "DeliveryStatus",
    "MediaFields",
    "MessageCreate",
    "MessageType",
    "PresenceRecord",
    "ReadReceiptRecord",
    "StreamEnvelope",
]
