"""
Adapter: Static Identity Provider

Identity and profile handed over by the caller (an upstream auth proxy
or the test suite). No token verification happens here.
"""

from admissions.core.interfaces.identity_provider import IIdentityProvider, Identity


class StaticIdentityProvider(IIdentityProvider):

    def __init__(self, email: str, uid: str, profile: dict | None = None):
        self._identity = Identity(email=email.strip().lower(), uid=uid)
        self._profile = dict(profile or {})

    async def get_identity(self) -> Identity:
        return self._identity

    async def get_profile(self) -> dict:
        return dict(self._profile)
