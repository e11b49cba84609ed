# src/huddle_chat/services/media.py
"""Blob storage for message attachments, backed by MinIO."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import time
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePosixPath

from minio import Minio
from minio.error import S3Error

from huddle_chat.core.settings import Settings
from huddle_chat.schemas import MessageType

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

_MEDIA_LABELS = {
    MessageType.IMAGE: "📷 Photo",
    MessageType.AUDIO: "🎵 Audio message",
    MessageType.VIDEO: "🎥 Video",
    MessageType.LOCATION: "📍 Location",
}


class MediaUploadError(RuntimeError):
    """Raised when an attachment cannot be stored."""


@dataclass(frozen=True)
class UploadedMedia:
    """Public location of a stored attachment."""

    file_url: str
    thumbnail_url: str | None
    object_name: str


def media_label(message_type: MessageType, file_name: str) -> str:
    """Return the display text sent along with a media message."""
    return _MEDIA_LABELS.get(message_type, file_name)


def build_minio_client(config: Settings) -> Minio:
    """Create a MinIO client from settings. No request is made until first use."""
    return Minio(
        config.minio_endpoint,
        access_key=config.minio_access_key,
        secret_key=config.minio_secret_key,
        secure=config.minio_secure,
    )


class MediaStorage:
    """Bucket wrapper that hands out public URLs for uploaded files."""

    def __init__(self, client: Minio, bucket: str, public_base_url: str) -> None:
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._bucket_ready = False

    @classmethod
    def from_settings(cls, config: Settings) -> MediaStorage:
        scheme = "https" if config.minio_secure else "http"
        base_url = config.media_public_base_url or (
            f"{scheme}://{config.minio_endpoint}/{config.minio_bucket}"
        )
        return cls(build_minio_client(config), config.minio_bucket, base_url)

    def object_name(self, conversation_id: str, file_name: str) -> str:
        """Return the object key for a new upload."""
        suffix = PurePosixPath(file_name).suffix
        return f"{conversation_id}/{time.time_ns() // 1_000_000}{suffix}"

    def public_url(self, object_name: str) -> str:
        """Return the public URL of a stored object."""
        return f"{self.public_base_url}/{object_name}"

    async def upload(
        self,
        conversation_id: str,
        file_name: str,
        data: bytes,
        message_type: MessageType,
    ) -> UploadedMedia:
        """Store an attachment and return where it can be fetched.

        Images reuse their own URL as the thumbnail; other types have none.

        Raises:
            MediaUploadError: If the bucket rejects the object
        """
        object_name = self.object_name(conversation_id, file_name)
        content_type = mimetypes.guess_type(file_name)[0] or DEFAULT_CONTENT_TYPE
        try:
            await asyncio.to_thread(self._put, object_name, data, content_type)
        except S3Error as err:
            logger.error("Failed to upload %s to bucket %s: %s", object_name, self.bucket, err)
            raise MediaUploadError(f"Could not store {file_name}") from err

        file_url = self.public_url(object_name)
        thumbnail_url = file_url if message_type is MessageType.IMAGE else None
        logger.info("Stored %d byte %s attachment at %s", len(data), message_type.value, object_name)
        return UploadedMedia(file_url=file_url, thumbnail_url=thumbnail_url, object_name=object_name)

    def _ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        if not self.client.bucket_exists(self.bucket):
            self.client.make_bucket(self.bucket)
            logger.info("Created media bucket %s", self.bucket)
        self._bucket_ready = True

    def _put(self, object_name: str, data: bytes, content_type: str) -> None:
        self._ensure_bucket()
        self.client.put_object(
            self.bucket,
            object_name,
            BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
