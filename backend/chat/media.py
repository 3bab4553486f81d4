# chat/media.py
"""
Media adapter for message attachments.

Files go through Django's ``default_storage``; any storage backend (local
filesystem, a hosted media service) can be plugged in via settings.
"""
from __future__ import annotations

import logging
import os
from typing import Tuple
from uuid import uuid4

from django.core.files.storage import default_storage

from config.errors import UpstreamError

from .models import Message

logger = logging.getLogger(__name__)


class MediaUploadError(UpstreamError):
    default_message = "Attachment upload failed."


def detect_media_type(content_type: str | None, name: str | None = None) -> str:
    ct = (content_type or "").lower()
    if ct.startswith("image/"):
        return Message.MEDIA_IMAGE
    if ct.startswith("video/"):
        return Message.MEDIA_VIDEO
    if ct.startswith("audio/"):
        return Message.MEDIA_AUDIO
    # fallback by extension
    ext = os.path.splitext(name or "")[1].lower()
    if ext in {".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp", ".heic"}:
        return Message.MEDIA_IMAGE
    if ext in {".mp4", ".webm", ".mov", ".mkv"}:
        return Message.MEDIA_VIDEO
    if ext in {".mp3", ".ogg", ".wav", ".m4a"}:
        return Message.MEDIA_AUDIO
    return Message.MEDIA_FILE


class MediaUploader:
    def __init__(self, storage=None, prefix: str = "messages"):
        self.storage = storage or default_storage
        self.prefix = prefix

    def upload(self, file, room_id: int) -> Tuple[str, str]:
        """Store ``file`` and return ``(url, media_type)``."""
        name = os.path.basename(getattr(file, "name", "") or "upload")
        path = f"{self.prefix}/{int(room_id)}/{uuid4().hex}/{name}"
        try:
            stored = self.storage.save(path, file)
            url = self.storage.url(stored)
        except Exception as exc:
            logger.exception("Attachment upload failed room=%s name=%s", room_id, name)
            raise MediaUploadError() from exc
        return url, detect_media_type(getattr(file, "content_type", None), name)
