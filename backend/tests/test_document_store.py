"""SQL document store adapter and the query/validation helpers it shares with the local mirror."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError

from climb_sync.db.session import Database, build_engine
from climb_sync.document_store import (
    BatchOperation,
    QueryCondition,
    apply_query,
    validate_collection_path,
    validate_document_id,
)
from climb_sync.errors import (
    ConnectivityError,
    DocumentNotFoundError,
    RecordValidationError,
    StorePermissionError,
    SyncError,
)
from climb_sync.repositories.documents import SqlDocumentStore, translate_error

from conftest import make_settings


@pytest.fixture
def database(tmp_path):
    db = Database(build_engine(make_settings(), f"sqlite:///{tmp_path / 'documents.db'}"))
    db.create_schema()
    yield db
    db.dispose()


@pytest.fixture
def store(database) -> SqlDocumentStore:
    return SqlDocumentStore(database)


def test_create_read_update_delete(store) -> None:
    async def scenario():
        await store.create("users", "u1", {"revision": 1, "stats": {"totalQuests": 3}})
        created = await store.read("users", "u1")
        await store.update("users", "u1", {"revision": 2})
        updated = await store.read("users", "u1")
        await store.delete("users", "u1")
        await store.delete("users", "u1")
        gone = await store.read("users", "u1")
        return created, updated, gone

    created, updated, gone = asyncio.run(scenario())

    assert created["revision"] == 1
    assert "id" not in created
    assert updated["revision"] == 2
    assert updated["stats"] == {"totalQuests": 3}
    assert updated["createdAt"] == created["createdAt"]
    assert gone is None


def test_create_overwrites_existing_document(store) -> None:
    async def scenario():
        await store.create("users/u1/goals", "g1", {"status": "active", "goalText": "old"})
        await store.create("users/u1/goals", "g1", {"status": "active"})
        return await store.read("users/u1/goals", "g1")

    document = asyncio.run(scenario())

    assert "goalText" not in document


def test_update_missing_document_raises_not_found(store) -> None:
    with pytest.raises(DocumentNotFoundError) as excinfo:
        asyncio.run(store.update("users", "ghost", {"revision": 1}))
    assert excinfo.value.doc_id == "ghost"


def test_query_filters_orders_and_limits(store) -> None:
    async def scenario():
        for day, minutes in (("2026-10-10", 10), ("2026-10-14", 30), ("2026-10-16", 20)):
            await store.create("users/u1/progress", day, {"date": day, "minutes": minutes})
        await store.create("users/u2/progress", "2026-10-16", {"date": "2026-10-16"})
        return await store.query(
            "users/u1/progress",
            [QueryCondition("date", ">=", "2026-10-11")],
            order_by="date",
            descending=True,
            limit=5,
        )

    results = asyncio.run(scenario())

    assert [doc["id"] for doc in results] == ["2026-10-16", "2026-10-14"]


def test_batch_write_is_atomic(store) -> None:
    async def scenario():
        await store.create("users/u1/goals", "g1", {"status": "active"})
        with pytest.raises(DocumentNotFoundError):
            await store.batch_write(
                [
                    BatchOperation("update", "users/u1/goals", "g1", {"status": "archived"}),
                    BatchOperation("update", "users/u1/goals", "missing", {"status": "archived"}),
                ]
            )
        return await store.read("users/u1/goals", "g1")

    assert asyncio.run(scenario())["status"] == "active"


def test_batch_write_rejects_unknown_kind(store) -> None:
    with pytest.raises(RecordValidationError):
        asyncio.run(store.batch_write([BatchOperation("upsert", "users", "u1", {})]))  # type: ignore[arg-type]


def test_document_subscription_receives_snapshots_until_unsubscribed(store) -> None:
    seen = []

    async def scenario():
        unsubscribe = store.subscribe_document("users", "u1", seen.append)
        await store.create("users", "u1", {"revision": 1})
        await store.create("users", "u2", {"revision": 9})
        await store.update("users", "u1", {"revision": 2})
        unsubscribe()
        await store.update("users", "u1", {"revision": 3})

    asyncio.run(scenario())

    assert [snapshot["revision"] for snapshot in seen] == [1, 2]


def test_query_subscription_receives_filtered_lists(store) -> None:
    seen = []

    async def scenario():
        store.subscribe_query("users/u1/quests", [QueryCondition("goalId", "==", "g1")], seen.append)
        await store.batch_write(
            [
                BatchOperation("create", "users/u1/quests", "q1", {"goalId": "g1"}),
                BatchOperation("create", "users/u1/quests", "q2", {"goalId": "g2"}),
            ]
        )

    asyncio.run(scenario())

    assert len(seen) == 1
    assert [doc["id"] for doc in seen[0]] == ["q1"]


def test_listener_errors_reach_error_callback(store) -> None:
    errors = []

    def broken(_snapshot):
        raise RuntimeError("listener bug")

    async def scenario():
        store.subscribe_document("users", "u1", broken, errors.append)
        await store.create("users", "u1", {})

    asyncio.run(scenario())

    assert len(errors) == 1
    assert isinstance(errors[0], RuntimeError)


def test_driver_errors_are_translated(store, monkeypatch) -> None:
    def unreachable(*_args):
        raise OperationalError("SELECT 1", {}, Exception("could not connect to server"))

    monkeypatch.setattr(store, "_read_sync", unreachable)

    with pytest.raises(ConnectivityError):
        asyncio.run(store.read("users", "u1"))


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (OperationalError("UPDATE", {}, Exception("connection refused")), ConnectivityError),
        (OperationalError("INSERT", {}, Exception("attempt to write a readonly database")), StorePermissionError),
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), RecordValidationError),
        (ProgrammingError("SELECT", {}, Exception("relation does not exist")), StorePermissionError),
    ],
)
def test_translate_error(error, expected) -> None:
    assert isinstance(translate_error(error, "write"), expected)


def test_translate_unknown_error_is_generic() -> None:
    translated = translate_error(SQLAlchemyError("odd"), "read")
    assert type(translated) is SyncError


@pytest.mark.parametrize("path", ["", "users/u1", "users//quests", "   "])
def test_invalid_collection_paths(path) -> None:
    with pytest.raises(RecordValidationError):
        validate_collection_path(path)


def test_collection_path_is_normalized() -> None:
    assert validate_collection_path("/users/u1/quests/") == "users/u1/quests"
    assert validate_document_id("quest_1_0") == "quest_1_0"
    with pytest.raises(RecordValidationError):
        validate_document_id("a/b")


def test_apply_query_operators() -> None:
    documents = [
        {"id": "a", "tags": ["x", "y"], "level": 1, "meta": {"kind": "read"}},
        {"id": "b", "tags": ["z"], "level": 3, "meta": {"kind": "video"}},
        {"id": "c", "level": 2},
    ]

    def ids(*conditions, **kwargs):
        return [doc["id"] for doc in apply_query(documents, conditions, **kwargs)]

    assert ids(QueryCondition("tags", "array-contains", "x")) == ["a"]
    assert ids(QueryCondition("tags", "array-contains-any", ["y", "z"])) == ["a", "b"]
    assert ids(QueryCondition("level", "in", [2, 3])) == ["b", "c"]
    assert ids(QueryCondition("meta.kind", "!=", "read")) == ["b"]
    assert ids(QueryCondition("level", "<", 3), order_by="level") == ["c", "a"]
    assert ids(order_by="meta.kind", descending=False) == ["a", "b", "c"]
    assert ids(order_by="level", limit=1) == ["b"]
    with pytest.raises(RecordValidationError):
        apply_query(documents, [], limit=-1)
