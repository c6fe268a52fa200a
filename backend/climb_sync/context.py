"""Explicit bundle of the collaborators the sync engine works with."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .cache.local_documents import LocalDocumentStore
from .cache.local_store import LocalCacheStore
from .config import Settings, get_settings
from .content_generator import ContentGenerator, TemplateContentGenerator
from .db.session import Database
from .document_store import DocumentStore, utc_now
from .identity import DeviceIdentityProvider, IdentityProvider
from .mode import ModeResolver
from .persistence import PersistenceRouter
from .repositories.documents import SqlDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///data/climb_sync.db"


@dataclass
class SyncContext:
    """Constructed once at start-up and passed down; tests build it from fakes."""

    settings: Settings
    remote: DocumentStore
    cache: LocalCacheStore
    mode: ModeResolver
    generator: ContentGenerator
    identity: IdentityProvider
    clock: Callable[[], datetime] = utc_now
    database: Optional[Database] = None
    local: LocalDocumentStore = field(init=False)
    router: PersistenceRouter = field(init=False)

    def __post_init__(self) -> None:
        self.local = LocalDocumentStore(self.cache)
        self.router = PersistenceRouter(self.remote, self.local, self.mode)

    def close(self) -> None:
        if self.database is not None:
            self.database.dispose()


def _select_generator(settings: Settings, mode: ModeResolver) -> ContentGenerator:
    info = mode.describe()
    if info.ai_enabled and settings.openai_api_key:
        from .agent_generator import AgentContentGenerator

        logger.info("Using agent content generator with model %s", settings.agent_model)
        return AgentContentGenerator(settings)
    logger.info("Using template content generator (ai_enabled=%s)", info.ai_enabled)
    return TemplateContentGenerator()


def build_context(settings: Optional[Settings] = None) -> SyncContext:
    settings = settings or get_settings()
    database_url = settings.database_url or DEFAULT_DATABASE_URL
    database = Database.from_settings(settings, database_url)
    if database_url.startswith("sqlite:///"):
        Path(database.engine.url.database or ".").parent.mkdir(parents=True, exist_ok=True)
    database.create_schema()
    cache = LocalCacheStore(settings.cache_path)
    mode = ModeResolver()
    return SyncContext(
        settings=settings,
        remote=SqlDocumentStore(database),
        cache=cache,
        mode=mode,
        generator=_select_generator(settings, mode),
        identity=DeviceIdentityProvider(cache),
        database=database,
    )


__all__ = ["DEFAULT_DATABASE_URL", "SyncContext", "build_context"]
