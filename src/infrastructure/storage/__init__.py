"""
Blob Storage Infrastructure
===========================

Storage for raw uploaded files, addressed by opaque string keys.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from src.config import settings
from src.core import StorageException
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class IBlobStorage(ABC):
    """Interface for blob storage operations."""

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """Store bytes under key, replacing any existing blob."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes stored under key."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the blob stored under key, if any."""


class LocalBlobStorage(IBlobStorage):
    """
    Filesystem-backed blob storage.

    File I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, root: Optional[Path] = None):
        self._root = Path(root or settings.blob_storage_dir)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageException(f"Invalid storage key: {key}")
        return path

    async def put(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise StorageException(f"Failed to store '{key}': {e}")

        logger.debug("Blob stored", extra={"key": key, "size": len(data)})

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise StorageException(f"File not found in storage: {key}")
        except OSError as e:
            raise StorageException(f"Failed to read '{key}': {e}")

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise StorageException(f"Failed to delete '{key}': {e}")


__all__ = ["IBlobStorage", "LocalBlobStorage"]
