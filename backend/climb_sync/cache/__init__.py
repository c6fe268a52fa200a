"""Local device cache and the document mirror stored in it."""

from .local_documents import LocalDocumentStore
from .local_store import (
    ANONYMOUS_USER_KEY,
    CACHED_PROFILE_KEY,
    LAST_SYNC_KEY,
    LocalCacheStore,
    documents_key,
)
from .profile_cache import (
    clear_cached_profile,
    last_sync_timestamp,
    load_cached_profile,
    save_cached_profile,
)

__all__ = [
    "ANONYMOUS_USER_KEY",
    "CACHED_PROFILE_KEY",
    "LAST_SYNC_KEY",
    "LocalCacheStore",
    "LocalDocumentStore",
    "clear_cached_profile",
    "documents_key",
    "last_sync_timestamp",
    "load_cached_profile",
    "save_cached_profile",
]
