"""
Local filesystem storage for uploaded product images.
"""

import asyncio
import re
import time
from dataclasses import dataclass
from pathlib import Path

from shared.logging import get_logger
from shared.errors import StorageError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredBlob:
    """A file persisted by the blob storage."""
    name: str
    path: Path
    public_url: str
    size: int


def safe_filename(filename: str) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    base = Path(filename.replace("\\", "/")).name
    cleaned = _UNSAFE_CHARS.sub("-", base).strip(".-")
    return cleaned or "upload"


class LocalBlobStorage:
    """Stores blobs under a directory and exposes them under a URL prefix."""

    def __init__(self, root: str, public_prefix: str = "/uploads"):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")
        self.logger = get_logger("catalog.storage.local")

    def start(self):
        self.root.mkdir(parents=True, exist_ok=True)

    async def save(self, filename: str, data: bytes) -> StoredBlob:
        """Persist ``data`` as ``<epoch-millis>-<filename>``."""
        name = f"{int(time.time() * 1000)}-{safe_filename(filename)}"
        path = self.root / name
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            self.logger.error("Failed to store blob", name=name, error=str(e))
            raise StorageError("Failed to store uploaded file", {"name": name}) from e

        self.logger.info("Blob stored", name=name, size=len(data))
        return StoredBlob(name=name, path=path, public_url=f"{self.public_prefix}/{name}", size=len(data))

    async def delete(self, blob: StoredBlob) -> None:
        """Remove a stored blob. Missing files are ignored."""
        try:
            await asyncio.to_thread(blob.path.unlink, missing_ok=True)
        except OSError as e:
            self.logger.error("Failed to delete blob", name=blob.name, error=str(e))
            raise StorageError("Failed to delete stored file", {"name": blob.name}) from e

        self.logger.info("Blob deleted", name=blob.name)

    def _write(self, path: Path, data: bytes):
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
