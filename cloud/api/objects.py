"""Content-addressed image storage."""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from pathlib import Path, PurePath

_LOGGER = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[0-9a-f]{64}\.[a-z0-9]{1,10}$")
DEFAULT_EXTENSION = "bin"

CONTENT_TYPES = {
    "avif": "image/avif",
    "gif": "image/gif",
    "heic": "image/heic",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
    "svg": "image/svg+xml",
    "webp": "image/webp",
}


def extension_for(filename: str | None) -> str:
    suffix = PurePath(filename or "").suffix.lstrip(".").lower()
    if not suffix or not re.fullmatch(r"[a-z0-9]{1,10}", suffix):
        return DEFAULT_EXTENSION
    return suffix


def content_key(data: bytes, filename: str | None) -> str:
    """Return ``sha256(data).hex + "." + extension``."""

    return f"{hashlib.sha256(data).hexdigest()}.{extension_for(filename)}"


def valid_key(key: str) -> bool:
    return bool(KEY_PATTERN.match(key))


def content_type_for(key: str) -> str:
    return CONTENT_TYPES.get(key.rsplit(".", 1)[-1], "application/octet-stream")


class ObjectStore:
    """Write-once blob directory keyed by content hash.

    Identical bytes always map to the same key, so a repeated upload is a
    no-op and the stored object never changes once written.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not valid_key(key):
            raise ValueError(f"invalid object key: {key!r}")
        return self.root / key

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def put(self, data: bytes, filename: str | None = None) -> tuple[str, bool]:
        """Store ``data`` and return ``(key, deduplicated)``."""

        if not data:
            raise ValueError("empty upload")
        key = content_key(data, filename)
        target = self._path(key)
        if target.exists():
            _LOGGER.debug("Object %s already stored", key)
            return key, True
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return key, False

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None


__all__ = ["ObjectStore", "content_key", "content_type_for", "extension_for", "valid_key"]
