from __future__ import annotations

import copy
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest

from climb_sync.cache.local_store import LocalCacheStore
from climb_sync.config import Settings
from climb_sync.content_generator import TemplateContentGenerator
from climb_sync.context import SyncContext
from climb_sync.document_store import (
    BatchOperation,
    ChangeNotifier,
    QueryCondition,
    apply_query,
    stamp_created,
    stamp_updated,
    validate_collection_path,
    validate_document_id,
)
from climb_sync.errors import DocumentNotFoundError
from climb_sync.identity import DeviceIdentityProvider
from climb_sync.mode import ModeResolver
from climb_sync.telemetry import TelemetryEvent, clear_listeners, register_listener
from climb_sync.user_profile import OnboardingAnswers, PreferenceProfile, Quest, SkillAtom


class FakeDocumentStore:
    """In-memory document store that counts calls and can be told to fail."""

    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: Counter[str] = Counter()
        self.failure: Optional[Exception] = None
        self.failing_operations: set[str] = set()
        self.notifier = ChangeNotifier()

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def fail_with(self, exc: Exception, *operations: str) -> None:
        self.failure = exc
        self.failing_operations = set(operations)

    def recover(self) -> None:
        self.failure = None
        self.failing_operations = set()

    def documents(self, path: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self.collections.get(path, {}))

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self.failure is not None and (not self.failing_operations or operation in self.failing_operations):
            raise self.failure

    async def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.batch_write([BatchOperation("create", path, doc_id, data)], _operation="create")

    async def read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        self._enter("read")
        document = self.collections.get(validate_collection_path(path), {}).get(validate_document_id(doc_id))
        return copy.deepcopy(document)

    async def update(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        await self.batch_write([BatchOperation("update", path, doc_id, partial)], _operation="update")

    async def delete(self, path: str, doc_id: str) -> None:
        await self.batch_write([BatchOperation("delete", path, doc_id)], _operation="delete")

    async def query(
        self,
        path: str,
        conditions: Sequence[QueryCondition] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._enter("query")
        collection = self.collections.get(validate_collection_path(path), {})
        documents = [{"id": doc_id, **copy.deepcopy(data)} for doc_id, data in collection.items()]
        return apply_query(documents, conditions, order_by, descending, limit)

    async def batch_write(self, operations: Sequence[BatchOperation], _operation: str = "batch_write") -> None:
        self._enter(_operation)
        staged = copy.deepcopy(self.collections)
        for op in operations:
            path = validate_collection_path(op.path)
            validate_document_id(op.doc_id)
            collection = staged.setdefault(path, {})
            if op.kind == "create":
                collection[op.doc_id] = stamp_created(op.data or {})
            elif op.kind == "update":
                if op.doc_id not in collection:
                    raise DocumentNotFoundError(path, op.doc_id)
                collection[op.doc_id] = stamp_updated(collection[op.doc_id], op.data or {})
            else:
                collection.pop(op.doc_id, None)
        self.collections = staged
        await self.notifier.publish(self, [(op.path, op.doc_id) for op in operations])

    def subscribe_document(self, path, doc_id, on_change, on_error=None):
        self._enter("subscribe")
        return self.notifier.add(path, doc_id, (), on_change, on_error)

    def subscribe_query(self, path, conditions, on_change, on_error=None):
        self._enter("subscribe")
        return self.notifier.add(path, None, conditions, on_change, on_error)


class ScriptedGenerator:
    """Template output unless a stage is scripted to return or raise something else."""

    def __init__(
        self,
        *,
        skill_map: Optional[List[SkillAtom]] = None,
        quests: Optional[List[Quest]] = None,
        skill_error: Optional[Exception] = None,
        quest_error: Optional[Exception] = None,
    ) -> None:
        self.skill_map = skill_map
        self.quests = quests
        self.skill_error = skill_error
        self.quest_error = quest_error
        self.calls: Counter[str] = Counter()
        self._template = TemplateContentGenerator()

    async def generate_skill_map(self, goal_text, level_tags, priority_areas) -> List[SkillAtom]:
        self.calls["skill_map"] += 1
        if self.skill_error is not None:
            raise self.skill_error
        if self.skill_map is not None:
            return list(self.skill_map)
        return await self._template.generate_skill_map(goal_text, level_tags, priority_areas)

    async def generate_quests(self, preference_profile: PreferenceProfile, skill_atoms) -> List[Quest]:
        self.calls["quests"] += 1
        if self.quest_error is not None:
            raise self.quest_error
        if self.quests is not None:
            return list(self.quests)
        return await self._template.generate_quests(preference_profile, skill_atoms)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


def make_settings(**aliases: Any) -> Settings:
    return Settings(_env_file=None, **aliases)  # type: ignore[call-arg]


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def cache(tmp_path) -> LocalCacheStore:
    return LocalCacheStore(tmp_path / "cache.json")


@pytest.fixture
def remote() -> FakeDocumentStore:
    return FakeDocumentStore()


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def clock() -> FakeClock:
    # A Friday.
    return FakeClock(datetime(2026, 10, 16, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def make_context(settings, cache, remote, generator, clock):
    def _make(mode: str = "full", **overrides: Any) -> SyncContext:
        resolver = ModeResolver(settings_loader=lambda: settings)
        if mode == "full":
            resolver.force_full()
        else:
            resolver.force_restricted()
        params: Dict[str, Any] = {
            "settings": settings,
            "remote": remote,
            "cache": cache,
            "mode": resolver,
            "generator": generator,
            "identity": DeviceIdentityProvider(cache),
            "clock": clock,
        }
        params.update(overrides)
        return SyncContext(**params)

    return _make


@pytest.fixture
def events():
    recorded: List[TelemetryEvent] = []
    register_listener(recorded.append)
    yield recorded
    clear_listeners()


@pytest.fixture
def answers() -> OnboardingAnswers:
    return OnboardingAnswers(
        goal_text="Pass TOEIC with 800 points in 3 months",
        goal_category="learning",
        goal_deadline="3m",
        goal_importance=4,
        time_budget_min_per_day=45,
        preferred_session_length_min=25,
        modality_preference=["read", "audio"],
        profile_answers={"current_level": "toeic_600", "study_place": "train"},
        memos={"study_place": "30 minutes each way"},
    )
