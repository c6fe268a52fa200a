"""Last-known-good profile kept in the local cache."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from ..user_profile import IntegratedUserProfile
from .local_store import CACHED_PROFILE_KEY, LAST_SYNC_KEY, LocalCacheStore

logger = logging.getLogger(__name__)


def save_cached_profile(cache: LocalCacheStore, profile: IntegratedUserProfile, synced_at: datetime) -> None:
    cache.set_many(
        {
            CACHED_PROFILE_KEY: profile.model_dump(mode="json"),
            LAST_SYNC_KEY: synced_at.isoformat(),
        }
    )
    logger.debug("Cached profile for %s at revision %d", profile.user_id, profile.revision)


def load_cached_profile(cache: LocalCacheStore) -> Optional[IntegratedUserProfile]:
    raw = cache.get(CACHED_PROFILE_KEY)
    if raw is None:
        return None
    try:
        return IntegratedUserProfile.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Discarding unreadable cached profile: %s", exc)
        return None


def last_sync_timestamp(cache: LocalCacheStore) -> Optional[datetime]:
    raw = cache.get(LAST_SYNC_KEY)
    if not isinstance(raw, str):
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        return None


def clear_cached_profile(cache: LocalCacheStore) -> None:
    cache.delete_many([CACHED_PROFILE_KEY, LAST_SYNC_KEY])


__all__ = [
    "clear_cached_profile",
    "last_sync_timestamp",
    "load_cached_profile",
    "save_cached_profile",
]
