"""Tests for attachment storage."""

import pytest
from minio.error import S3Error

from huddle_chat.core.settings import Settings
from huddle_chat.schemas import MessageType
from huddle_chat.services.media import MediaStorage, MediaUploadError, media_label


@pytest.fixture()
def minio_client(mocker):
    client = mocker.MagicMock()
    client.bucket_exists.return_value = True
    return client


@pytest.mark.parametrize(
    ("message_type", "expected"),
    [
        (MessageType.IMAGE, "📷 Photo"),
        (MessageType.AUDIO, "🎵 Audio message"),
        (MessageType.VIDEO, "🎥 Video"),
        (MessageType.LOCATION, "📍 Location"),
        (MessageType.FILE, "report.pdf"),
    ],
)
def test_media_label(message_type: MessageType, expected: str) -> None:
    assert media_label(message_type, "report.pdf") == expected


@pytest.mark.asyncio
async def test_upload_image_puts_object_and_reuses_url_as_thumbnail(minio_client) -> None:
    storage = MediaStorage(minio_client, "chat-media", "https://media.test/chat/")

    uploaded = await storage.upload("c1", "cat.jpg", b"jpeg-bytes", MessageType.IMAGE)

    assert uploaded.object_name.startswith("c1/")
    assert uploaded.object_name.endswith(".jpg")
    assert uploaded.file_url == f"https://media.test/chat/{uploaded.object_name}"
    assert uploaded.thumbnail_url == uploaded.file_url

    minio_client.put_object.assert_called_once()
    args, kwargs = minio_client.put_object.call_args
    assert args[0] == "chat-media"
    assert args[1] == uploaded.object_name
    assert args[2].read() == b"jpeg-bytes"
    assert kwargs["length"] == len(b"jpeg-bytes")
    assert kwargs["content_type"] == "image/jpeg"


@pytest.mark.asyncio
async def test_upload_audio_has_no_thumbnail(minio_client) -> None:
    storage = MediaStorage(minio_client, "chat-media", "https://media.test/chat")

    uploaded = await storage.upload("c1", "note.m4a", b"audio", MessageType.AUDIO)

    assert uploaded.thumbnail_url is None
    assert uploaded.file_url.startswith("https://media.test/chat/c1/")


@pytest.mark.asyncio
async def test_unknown_extension_falls_back_to_octet_stream(minio_client) -> None:
    storage = MediaStorage(minio_client, "chat-media", "https://media.test/chat")

    await storage.upload("c1", "blob.huddlebin", b"\x00\x01", MessageType.FILE)

    assert minio_client.put_object.call_args.kwargs["content_type"] == "application/octet-stream"


@pytest.mark.asyncio
async def test_missing_bucket_is_created_once(minio_client) -> None:
    minio_client.bucket_exists.return_value = False
    storage = MediaStorage(minio_client, "chat-media", "https://media.test/chat")

    await storage.upload("c1", "a.png", b"a", MessageType.IMAGE)
    await storage.upload("c1", "b.png", b"b", MessageType.IMAGE)

    minio_client.make_bucket.assert_called_once_with("chat-media")
    assert minio_client.put_object.call_count == 2


@pytest.mark.asyncio
async def test_rejected_upload_raises_media_upload_error(minio_client, mocker) -> None:
    minio_client.put_object.side_effect = S3Error(
        code="AccessDenied",
        message="denied",
        resource="c1/x.png",
        request_id="req-1",
        host_id="host-1",
        response=mocker.MagicMock(),
    )
    storage = MediaStorage(minio_client, "chat-media", "https://media.test/chat")

    with pytest.raises(MediaUploadError):
        await storage.upload("c1", "x.png", b"x", MessageType.IMAGE)


def test_from_settings_defaults_to_endpoint_urls() -> None:
    config = Settings(
        SECRET_KEY="k",
        MINIO_ENDPOINT="minio.internal:9000",
        MINIO_BUCKET="uploads",
        MEDIA_PUBLIC_BASE_URL="",
    )

    storage = MediaStorage.from_settings(config)

    assert storage.bucket == "uploads"
    assert storage.public_url("c1/1.png") == "http://minio.internal:9000/uploads/c1/1.png"
