"""
Adapter: Local Blob Store

IBlobStore on the local filesystem, for development. Objects live under
``root`` and are served by the API under ``public_base_url``.
"""

import asyncio
import hashlib
import logging
from pathlib import Path

from admissions.core.interfaces.blob_store import BlobStoreError, IBlobStore, StoredObject

logger = logging.getLogger(__name__)


class LocalBlobStore(IBlobStore):

    def __init__(self, root: str, public_base_url: str):
        self._root = Path(root).resolve()
        self._base_url = public_base_url.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _file_for(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root not in target.parents:
            raise BlobStoreError(f"Path {path} escapes the storage root")
        return target

    def _path_for(self, url: str) -> str:
        prefix = f"{self._base_url}/"
        if not url.startswith(prefix):
            raise BlobStoreError(f"URL {url} is not served by this store")
        return url[len(prefix):]

    async def put_object(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        target = self._file_for(path)
        try:
            await asyncio.to_thread(self._write, target, data)
        except OSError as e:
            logger.error(f"Writing {target} failed: {e}")
            raise BlobStoreError(f"Could not store {path}") from e
        logger.info(f"Stored {path} ({len(data)} bytes)")
        return StoredObject(
            url=f"{self._base_url}/{path}",
            path=path,
            size_bytes=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            content_type=content_type,
        )

    async def delete_object(self, url: str) -> None:
        target = self._file_for(self._path_for(url))
        try:
            await asyncio.to_thread(target.unlink, missing_ok=True)
        except OSError as e:
            raise BlobStoreError(f"Could not delete {url}") from e

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
