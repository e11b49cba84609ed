# src/huddle_chat/main.py
"""Main entry point for the Huddle chat service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from huddle_chat.api.v1 import (
    conversations_router,
    messages_router,
    presence_router,
    stream_router,
)
from huddle_chat.core.logging import configure_logging
from huddle_chat.core.settings import Settings, settings
from huddle_chat.services.chat import ChatClient, ChatContext

logger = logging.getLogger(__name__)


def create_app(config: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    The chat context is created on startup and closed on shutdown, so each
    application instance owns its own engine and change feed.
    """
    config = config or settings

    app = FastAPI(
        title=config.app_name,
        description="One-to-one chat with optimistic sends and live delivery status",
        version=config.app_version,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    # Include API routers
    app.include_router(conversations_router, prefix="/api/v1")
    app.include_router(messages_router, prefix="/api/v1")
    app.include_router(presence_router, prefix="/api/v1")
    app.include_router(stream_router, prefix="/api/v1")

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging(config)
        app.state.chat_client = ChatClient(ChatContext.build(config))
        logger.info("%s %s started", config.app_name, config.app_version)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        client: ChatClient | None = getattr(app.state, "chat_client", None)
        if client is not None:
            client.close()
            client.context.close()
        logger.info("%s stopped", config.app_name)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": config.app_name,
            "version": config.app_version,
            "docs": "/docs",
            "redoc": "/redoc",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("huddle_chat.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
