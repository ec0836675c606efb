"""Local-directory storage for profile pictures."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from .domain.errors import ValidationError

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class LocalAvatarStore:
    """Write avatars under ``directory`` and hand out URLs below ``base_url``."""

    def __init__(self, directory: Path, base_url: str, max_bytes: int, default_name: str) -> None:
        self._directory = directory
        self._base_url = base_url.rstrip("/")
        self._max_bytes = max_bytes
        self._default_name = default_name

    @property
    def default_url(self) -> str:
        return f"{self._base_url}/{self._default_name}"

    def save(self, content: bytes, content_type: str) -> str:
        """Persist ``content`` and return its durable URL."""
        extension = _EXTENSIONS.get(content_type.split(";")[0].strip().lower())
        if extension is None:
            raise ValidationError("avatar must be a PNG, JPEG, GIF or WebP image")
        if not content:
            raise ValidationError("avatar image is empty")
        if len(content) > self._max_bytes:
            raise ValidationError(f"avatar image exceeds {self._max_bytes} bytes")

        self._directory.mkdir(parents=True, exist_ok=True)
        filename = f"{uuid.uuid4().hex}{extension}"
        (self._directory / filename).write_bytes(content)
        return f"{self._base_url}/{filename}"

    def owns(self, url: str) -> bool:
        """Whether ``url`` names an uploaded file in this store (the shared default excluded)."""
        return self._filename(url) is not None

    def delete(self, url: str) -> None:
        """Remove a superseded avatar; failures are logged and otherwise ignored."""
        filename = self._filename(url)
        if filename is None:
            return
        try:
            (self._directory / filename).unlink()
        except OSError as exc:
            logger.warning("could not delete superseded avatar %s: %s", filename, exc)
        else:
            logger.info("deleted superseded avatar %s", filename)

    def _filename(self, url: str) -> str | None:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            return None
        filename = url[len(prefix):]
        if not filename or filename == self._default_name or "/" in filename:
            return None
        return filename
