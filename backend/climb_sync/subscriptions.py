"""Live profile updates: every change notification triggers a full reload."""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .context import SyncContext
from .document_store import Unsubscribe
from .documents import USERS_COLLECTION, quests_path
from .profile_loader import ProfileLoader
from .user_profile import IntegratedUserProfile

logger = logging.getLogger(__name__)

ProfileCallback = Callable[[Optional[IntegratedUserProfile]], Union[None, Awaitable[None]]]


def _noop() -> None:
    return None


async def _deliver(callback: ProfileCallback, profile: Optional[IntegratedUserProfile]) -> None:
    result = callback(profile)
    if inspect.isawaitable(result):
        await result


class _ProfileSubscription:
    def __init__(self, loader: ProfileLoader, user_id: str, callback: ProfileCallback) -> None:
        self._loader = loader
        self._user_id = user_id
        self._callback = callback
        self.active = True
        self.last_revision = -1
        self.delivered_empty = False

    async def on_change(self, _snapshot: Any) -> None:
        if not self.active:
            return
        profile = await self._loader.load_user(self._user_id)
        if not self.active:
            return
        if profile is None:
            if self.delivered_empty:
                return
            self.delivered_empty = True
            self.last_revision = -1
            await _deliver(self._callback, None)
            return
        if profile.revision <= self.last_revision:
            logger.debug(
                "Dropping stale profile for %s (revision %d <= %d)",
                self._user_id,
                profile.revision,
                self.last_revision,
            )
            return
        self.last_revision = profile.revision
        self.delivered_empty = False
        await _deliver(self._callback, profile)

    def on_error(self, exc: Exception) -> None:
        logger.warning("Profile subscription error for %s: %s", self._user_id, exc)


class SubscriptionManager:
    def __init__(self, context: SyncContext, loader: Optional[ProfileLoader] = None) -> None:
        self._ctx = context
        self._loader = loader or ProfileLoader(context)

    async def subscribe_to_profile(self, user_id: str, callback: ProfileCallback) -> Unsubscribe:
        """Push a reassembled profile on every change until unsubscribed.

        In restricted mode the cached profile is delivered once and nothing is
        subscribed. If setup fails ``callback(None)`` is delivered once. Both
        cases return a no-op unsubscribe.
        """
        if self._ctx.mode.is_restricted():
            await _deliver(callback, self._loader.cached(user_id))
            return _noop

        subscription = _ProfileSubscription(self._loader, user_id, callback)
        remote = self._ctx.remote
        try:
            stop_profile = remote.subscribe_document(
                USERS_COLLECTION,
                user_id,
                subscription.on_change,
                subscription.on_error,
            )
            try:
                stop_quests = remote.subscribe_query(
                    quests_path(user_id),
                    (),
                    subscription.on_change,
                    subscription.on_error,
                )
            except Exception:
                stop_profile()
                raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not subscribe to profile %s: %s", user_id, exc)
            await _deliver(callback, None)
            return _noop

        def unsubscribe() -> None:
            subscription.active = False
            stop_profile()
            stop_quests()

        return unsubscribe


__all__ = ["ProfileCallback", "SubscriptionManager"]
