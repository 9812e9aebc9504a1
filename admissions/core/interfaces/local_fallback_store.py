"""
Contract: Local Fallback Store

Synchronous key -> JSON blob cache, scoped to one client. Used only as
the autosave's last resort during an outage of the record store; it is
not a durability tier and is never synchronised.
"""

from abc import ABC, abstractmethod


class FallbackStoreError(Exception):
    """The local cache could not be read or written."""


class ILocalFallbackStore(ABC):
    """Port: Local Fallback Store"""

    @abstractmethod
    def write(self, key: str, payload: dict) -> None:
        ...

    @abstractmethod
    def read(self, key: str) -> dict | None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    def move(self, old_key: str, new_key: str) -> None:
        """Re-keys an entry; no-op when the old key is absent."""
        payload = self.read(old_key)
        if payload is None:
            return
        self.write(new_key, payload)
        self.delete(old_key)
