"""Avatar storage.

The storage collaborator accepts a local file path and returns a public
URL, or raises ExternalServiceError. ``store_upload`` stages an incoming
upload in a temp file, hands it to the storage backend, and removes the
temp file whether or not the upload succeeded.

The bundled backend copies files into a directory served as static
content. Blocking filesystem work runs in ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Protocol

import structlog
from fastapi import UploadFile

from src.meeting_tracker.core.errors import ExternalServiceError, ValidationError

logger = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}


class AvatarStorage(Protocol):
    async def upload(self, local_path: str) -> str: ...


class LocalAvatarStorage:
    """Stores avatars under ``upload_dir`` and serves them from ``public_base_url``.

    Args:
        upload_dir: Directory files are copied into.
        public_base_url: URL prefix the directory is exposed under.
    """

    def __init__(self, upload_dir: str, public_base_url: str) -> None:
        self._upload_dir = Path(upload_dir)
        self._public_base_url = public_base_url.rstrip("/")

    async def upload(self, local_path: str) -> str:
        """Copy a local file into storage.

        Args:
            local_path: Path of the staged file.

        Returns:
            Public URL of the stored file.

        Raises:
            ExternalServiceError: If the file cannot be stored.
        """
        ext = Path(local_path).suffix.lower() or ".png"
        name = f"{uuid.uuid4().hex}{ext}"
        target = self._upload_dir / name

        def _copy() -> None:
            self._upload_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, target)

        try:
            await asyncio.to_thread(_copy)
        except OSError as exc:
            logger.error("avatar.upload_failed", path=local_path, error=str(exc))
            raise ExternalServiceError("Avatar upload failed") from exc

        url = f"{self._public_base_url}/{name}"
        logger.info("avatar.uploaded", url=url)
        return url


async def store_upload(storage: AvatarStorage, upload: UploadFile) -> str:
    """Stage an UploadFile on disk, upload it, and always remove the temp file.

    Raises:
        ExternalServiceError: If the storage backend rejects the file.
    """
    suffix = Path(upload.filename or "").suffix.lower()
    if suffix and suffix not in ALLOWED_EXTENSIONS:
        raise ValidationError(f"Unsupported avatar file type: {suffix}")

    content = await upload.read()
    fd, tmp_path = tempfile.mkstemp(suffix=suffix or ".png")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(content)
        return await storage.upload(tmp_path)
    finally:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass
