"""
Adapter: In-Memory Blob Store

Keeps object bytes in a dict. ``gate`` (an asyncio.Event) holds every
upload until it is set, which lets tests observe work in flight.
"""

import asyncio
import hashlib
from collections import Counter

from admissions.core.interfaces.blob_store import BlobStoreError, IBlobStore, StoredObject


class InMemoryBlobStore(IBlobStore):

    def __init__(self, base_url: str = "memory://blobs", latency: float = 0.0):
        self.base_url = base_url.rstrip("/")
        self.objects: dict[str, bytes] = {}
        self.calls: Counter = Counter()
        self.latency = latency
        self.offline = False
        self.gate: asyncio.Event | None = None
        self.fail_matching: set[str] = set()      # substrings of object paths to reject
        self._failures: dict[str, list[Exception]] = {}

    def fail_next(self, method: str, error: Exception | None = None, times: int = 1) -> None:
        queue = self._failures.setdefault(method, [])
        for _ in range(times):
            queue.append(error or BlobStoreError(f"{method} failed"))

    async def _enter(self, method: str) -> None:
        self.calls[method] += 1
        await asyncio.sleep(self.latency)
        if self.offline:
            raise BlobStoreError("blob store unreachable")
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    @property
    def network_calls(self) -> int:
        return sum(self.calls.values())

    async def put_object(self, data: bytes, path: str, content_type: str = "application/octet-stream") -> StoredObject:
        await self._enter("put_object")
        if self.gate is not None:
            await self.gate.wait()
        if any(part in path for part in self.fail_matching):
            raise BlobStoreError(f"upload of {path} rejected")
        self.objects[path] = bytes(data)
        return StoredObject(
            url=f"{self.base_url}/{path}",
            path=path,
            size_bytes=len(data),
            sha256=hashlib.sha256(data).hexdigest(),
            content_type=content_type,
        )

    async def delete_object(self, url: str) -> None:
        await self._enter("delete_object")
        path = url[len(self.base_url) + 1:] if url.startswith(f"{self.base_url}/") else url
        self.objects.pop(path, None)
