"""Anonymous device identity used as the per-user document root."""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import Optional, Protocol

from .cache.local_store import ANONYMOUS_USER_KEY, LocalCacheStore

logger = logging.getLogger(__name__)


class IdentityState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    RESOLVING = "resolving"
    RESOLVED = "resolved"


class IdentityProvider(Protocol):
    @property
    def state(self) -> IdentityState:
        ...

    async def resolve_user_id(self) -> str:
        ...


class DeviceIdentityProvider:
    """Reuses the anonymous id stored on this device, minting one on first use."""

    def __init__(self, cache: LocalCacheStore) -> None:
        self._cache = cache
        self._state = IdentityState.UNAUTHENTICATED
        self._user_id: Optional[str] = None

    @property
    def state(self) -> IdentityState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    async def resolve_user_id(self) -> str:
        if self._state is IdentityState.RESOLVED and self._user_id:
            return self._user_id
        self._state = IdentityState.RESOLVING
        try:
            user_id = self._cache.get(ANONYMOUS_USER_KEY)
            if not isinstance(user_id, str) or not user_id:
                user_id = f"user_{uuid.uuid4().hex}"
                self._cache.set(ANONYMOUS_USER_KEY, user_id)
                logger.info("Minted anonymous user id %s", user_id)
        except Exception:
            self._state = IdentityState.UNAUTHENTICATED
            raise
        self._user_id = user_id
        self._state = IdentityState.RESOLVED
        return user_id

    def sign_out(self) -> None:
        self._user_id = None
        self._state = IdentityState.UNAUTHENTICATED


__all__ = ["DeviceIdentityProvider", "IdentityProvider", "IdentityState"]
