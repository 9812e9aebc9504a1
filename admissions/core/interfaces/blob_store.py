"""
Contract: Blob Store

Stores document bytes in object storage (S3/MinIO/local filesystem).
A just-uploaded URL must be immediately readable.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class StoredObject:
    """Reference to a stored object."""
    url: str
    path: str
    size_bytes: int
    sha256: str
    content_type: str


class BlobStoreError(Exception):
    """Upload or deletion failed."""


class IBlobStore(ABC):
    """
    Port: Blob Store

    Persists binary document content. The implementation can be S3,
    MinIO, the local filesystem, etc.
    """

    @abstractmethod
    async def put_object(
        self,
        data: bytes,
        path: str,
        content_type: str = "application/octet-stream",
    ) -> StoredObject:
        """
        Uploads an object.

        Args:
            data: Content in bytes.
            path: Key inside the store.
            content_type: MIME type.

        Returns:
            StoredObject with public URL and hash.
        """
        ...

    @abstractmethod
    async def delete_object(self, url: str) -> None:
        """
        Deletes an object by the URL returned from put_object.

        Deleting an object that no longer exists is not an error.
        """
        ...
