"""
Contract: Identity Provider

Supplies the authenticated owner and a profile snapshot used only to
back-fill empty draft fields.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Identity:
    email: str
    uid: str


class IIdentityProvider(ABC):
    """Port: Identity Provider"""

    @abstractmethod
    async def get_identity(self) -> Identity:
        ...

    @abstractmethod
    async def get_profile(self) -> dict:
        """Profile fields keyed like the form: firstName, lastName, email, phone."""
        ...
