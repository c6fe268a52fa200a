"""Read side: rebuild the integrated profile from the remote store or the cache."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import List, Optional

from .cache.profile_cache import load_cached_profile, save_cached_profile
from .context import SyncContext
from .document_store import QueryCondition
from .documents import (
    USERS_COLLECTION,
    ProfileDocument,
    ProgressDocument,
    QuestDocument,
    progress_path,
    quests_path,
)
from .normalization import documents_to_profile
from .user_profile import WEEK_SLOTS, IntegratedUserProfile

logger = logging.getLogger(__name__)


def _quest_order(document: QuestDocument) -> tuple:
    prefix, _, suffix = document.id.rpartition("_")
    return (prefix, int(suffix)) if suffix.isdigit() else (document.id, -1)


class ProfileLoader:
    def __init__(self, context: SyncContext) -> None:
        self._ctx = context

    def cached(self, user_id: Optional[str] = None) -> Optional[IntegratedUserProfile]:
        try:
            profile = load_cached_profile(self._ctx.cache)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Local cache unreadable: %s", exc)
            return None
        if profile is not None and user_id is not None and profile.user_id != user_id:
            return None
        return profile

    async def load(self) -> Optional[IntegratedUserProfile]:
        if self._ctx.mode.is_restricted():
            return self.cached()
        try:
            user_id = await self._ctx.identity.resolve_user_id()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not resolve user id, serving cached profile: %s", exc)
            return self.cached()
        return await self.load_user(user_id)

    async def load_user(self, user_id: str) -> Optional[IntegratedUserProfile]:
        """Full load for ``user_id``; the cache answers when the remote store cannot."""
        if self._ctx.mode.is_restricted():
            return self.cached(user_id)
        cached = self.cached(user_id)
        try:
            remote = await self.read_remote(user_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Remote load failed for %s, serving cached profile: %s", user_id, exc)
            return cached
        if remote is None:
            # A profile written only to the cache while the store was unreachable.
            return cached
        if cached is not None and cached.revision > remote.revision:
            logger.info(
                "Cached profile for %s is newer (revision %d > %d); keeping it",
                user_id,
                cached.revision,
                remote.revision,
            )
            return cached
        try:
            save_cached_profile(self._ctx.cache, remote, self._ctx.clock())
        except Exception:  # noqa: BLE001
            logger.exception("Failed to refresh cached profile for %s", user_id)
        return remote

    async def read_remote(self, user_id: str) -> Optional[IntegratedUserProfile]:
        store = self._ctx.remote
        raw = await store.read(USERS_COLLECTION, user_id)
        if raw is None:
            logger.debug("No profile document for %s", user_id)
            return None
        profile_doc = ProfileDocument.model_validate(raw)
        if not profile_doc.onboarding_completed:
            return None

        quest_docs: List[QuestDocument] = []
        if profile_doc.current_goal_id:
            quest_docs = await self._goal_quests(user_id, profile_doc.current_goal_id)

        now = self._ctx.clock()
        today = now.date()
        since = (today - timedelta(days=WEEK_SLOTS - 1)).isoformat()
        raw_progress = await store.query(
            progress_path(user_id),
            [QueryCondition("date", ">=", since)],
            order_by="date",
            descending=True,
            limit=WEEK_SLOTS,
        )
        progress_docs = [ProgressDocument.model_validate(doc) for doc in raw_progress]
        return documents_to_profile(profile_doc, quest_docs, progress_docs, today=today, now=now)

    async def _goal_quests(self, user_id: str, goal_id: str) -> List[QuestDocument]:
        path = quests_path(user_id)
        conditions = [QueryCondition("goalId", "==", goal_id)]
        raw = {doc["id"]: doc for doc in await self._ctx.remote.query(path, conditions)}
        # Quests whose remote batch failed were written to the local mirror instead.
        for doc in await self._ctx.local.query(path, conditions):
            raw.setdefault(doc["id"], doc)
        return sorted((QuestDocument.model_validate(doc) for doc in raw.values()), key=_quest_order)


__all__ = ["ProfileLoader"]
