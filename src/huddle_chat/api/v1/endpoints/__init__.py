"""API v1 endpoint routers."""

from .conversations import router as conversations_router
from .messages import router as messages_router
from .presence import router as presence_router
from .stream import router as stream_router

__all__ = ["conversations_router", "messages_router", "presence_router", "stream_router"]
