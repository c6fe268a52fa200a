from __future__ import annotations

import asyncio

import pytest

from climb_sync.document_store import BatchOperation
from climb_sync.errors import ConnectivityError, DocumentNotFoundError, StorePermissionError


def test_full_mode_writes_remote_only(make_context, remote) -> None:
    context = make_context()

    asyncio.run(context.router.create("users", "u1", {"revision": 1}))

    assert remote.documents("users")["u1"]["revision"] == 1
    assert asyncio.run(context.local.read("users", "u1")) is None


def test_restricted_mode_uses_local_store(make_context, remote) -> None:
    context = make_context(mode="restricted")

    asyncio.run(context.router.create("users", "u1", {"revision": 1}))

    assert remote.total_calls == 0
    assert asyncio.run(context.router.read("users", "u1"))["revision"] == 1
    assert context.router.uses_local()


@pytest.mark.parametrize("error", [ConnectivityError("offline"), StorePermissionError("denied"), RuntimeError("odd")])
def test_remote_failure_falls_back_to_local(make_context, remote, events, error) -> None:
    context = make_context()
    remote.fail_with(error, "create", "read")

    asyncio.run(context.router.create("users/u1/goals", "g1", {"status": "active"}))
    document = asyncio.run(context.router.read("users/u1/goals", "g1"))

    assert document["status"] == "active"
    assert remote.calls["create"] == 1
    fallbacks = [event for event in events if event.name == "persistence_fallback"]
    assert [event.payload["operation"] for event in fallbacks] == ["create", "read"]
    assert fallbacks[0].payload["error"] == type(error).__name__


def test_missing_document_is_not_retried_locally(make_context, remote) -> None:
    context = make_context()

    with pytest.raises(DocumentNotFoundError):
        asyncio.run(context.router.update("users", "ghost", {"revision": 2}))
    assert context.local.collection_paths() == []


def test_batch_and_query_fall_back_together(make_context, remote) -> None:
    context = make_context()
    remote.fail_with(ConnectivityError("offline"))

    async def scenario():
        await context.router.batch_write(
            [
                BatchOperation("create", "users/u1/quests", "q1", {"goalId": "g1"}),
                BatchOperation("create", "users/u1/quests", "q2", {"goalId": "g1"}),
            ]
        )
        return await context.router.query("users/u1/quests")

    assert [doc["id"] for doc in asyncio.run(scenario())] == ["q1", "q2"]


def test_subscriptions_follow_the_mode(make_context, remote) -> None:
    full = make_context()
    stop = full.router.subscribe_document("users", "u1", lambda _snapshot: None)
    assert remote.notifier.listener_count() == 1
    stop()
    assert remote.notifier.listener_count() == 0

    restricted = make_context(mode="restricted")
    restricted.router.subscribe_query("users/u1/quests", [], lambda _snapshot: None)
    assert remote.calls["subscribe"] == 1
