# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("SECRET_KEY", "huddle-test-secret-key")

from huddle_chat.core.security import create_access_token
from huddle_chat.core.settings import Settings
from huddle_chat.main import create_app
from huddle_chat.services.chat import ChatClient, ChatContext


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a throwaway SQLite file and a test bucket."""
    return Settings(
        SECRET_KEY=os.environ["SECRET_KEY"],
        DATABASE_URL=f"sqlite:///{tmp_path / 'chat.db'}",
        MINIO_ENDPOINT="minio.test:9000",
        MINIO_BUCKET="chat-media",
        MEDIA_PUBLIC_BASE_URL="https://media.test/chat/",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture()
def chat_context(test_settings: Settings) -> Iterator[ChatContext]:
    context = ChatContext.build(test_settings)
    try:
        yield context
    finally:
        context.close()


@pytest_asyncio.fixture()
async def chat(test_settings: Settings) -> AsyncIterator[ChatClient]:
    """Chat client whose live channels are released on the test's own loop."""
    client = ChatClient(ChatContext.build(test_settings))
    try:
        yield client
    finally:
        client.close()
        client.context.close()


@pytest.fixture()
def app(test_settings: Settings) -> FastAPI:
    return create_app(test_settings)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def auth_headers(test_settings: Settings) -> Callable[[str], dict[str, str]]:
    """Return a factory building bearer headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        token = create_access_token(user_id, config=test_settings)
        return {"Authorization": f"Bearer {token}"}

    return _headers
