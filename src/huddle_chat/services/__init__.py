"""Chat services: encryption, persistence, delivery tracking and live updates."""

from .change_feed import ChangeEvent, ChangeFeed, ChangeType, Subscription
from .chat import ChatClient, ChatContext
from .codec import CodecStats, MessageCodec
from .delivery import DeliveryTracker
from .keys import derive_chat_key, generate_secure_key
from .live import LiveUpdateReconciler
from .media import MediaStorage, MediaUploadError, UploadedMedia, media_label
from .outbox import MessageSendError, OptimisticSender
from .reconcile import ConversationView, merge_message
from .store import ChatStore, ConversationNotFoundError, PersistenceError

__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeType",
    "ChatClient",
    "ChatContext",
    "ChatStore",
    "CodecStats",
    "ConversationNotFoundError",
    "ConversationView",
    "DeliveryTracker",
    "LiveUpdateReconciler",
    "MediaStorage",
    "MediaUploadError",
    "MessageCodec",
    "MessageSendError",
    "OptimisticSender",
    "PersistenceError",
    "Subscription",
    "UploadedMedia",
    "derive_chat_key",
    "generate_secure_key",
    "media_label",
    "merge_message",
]
