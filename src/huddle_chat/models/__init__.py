# src/huddle_chat/models/__init__.py
"""SQLAlchemy models for the Huddle chat store."""

from .conversation import Conversation, ConversationParticipant
from .message import Message, ReadReceipt
from .presence import UserPresence

__all__ = [
    "Conversation", "ConversationParticipant",
    "Message", "ReadReceipt",
    "UserPresence",
]
