"""Adapter: In-Memory Local Fallback Store (tests and demos)."""

import copy
from collections import Counter

from admissions.core.interfaces.local_fallback_store import FallbackStoreError, ILocalFallbackStore


class InMemoryFallbackStore(ILocalFallbackStore):

    def __init__(self):
        self.entries: dict[str, dict] = {}
        self.calls: Counter = Counter()
        self.broken = False

    def _enter(self, method: str) -> None:
        self.calls[method] += 1
        if self.broken:
            raise FallbackStoreError("local storage unavailable")

    def write(self, key: str, payload: dict) -> None:
        self._enter("write")
        self.entries[key] = copy.deepcopy(payload)

    def read(self, key: str) -> dict | None:
        self._enter("read")
        payload = self.entries.get(key)
        return copy.deepcopy(payload) if payload is not None else None

    def delete(self, key: str) -> None:
        self._enter("delete")
        self.entries.pop(key, None)
