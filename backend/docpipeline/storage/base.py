"""
Blob Storage — Abstract Base

The pipeline needs exactly one storage operation: fetch the bytes behind a
document's file_path. Backends (S3, in-memory for tests) implement this
interface and raise StorageError on any failure, including an empty object.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BlobStorage(ABC):

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the full object body for ``path``. Never returns b""."""
