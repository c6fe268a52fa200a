"""Document store contract shared by the remote adapter and the local mirror."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import RLock
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Literal,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from .errors import RecordValidationError

logger = logging.getLogger(__name__)

CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"

Operator = Literal["==", "!=", "<", "<=", ">", ">=", "in", "array-contains", "array-contains-any"]
ChangeCallback = Callable[[Any], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class QueryCondition:
    field: str
    op: Operator
    value: Any


@dataclass(frozen=True)
class BatchOperation:
    kind: Literal["create", "update", "delete"]
    path: str
    doc_id: str
    data: Optional[Dict[str, Any]] = None


class DocumentStore(Protocol):
    """Generic CRUD/query/batch/subscribe operations over collection paths."""

    async def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    async def read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def update(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        ...

    async def delete(self, path: str, doc_id: str) -> None:
        ...

    async def query(
        self,
        path: str,
        conditions: Sequence[QueryCondition] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def batch_write(self, operations: Sequence[BatchOperation]) -> None:
        ...

    def subscribe_document(
        self,
        path: str,
        doc_id: str,
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...

    def subscribe_query(
        self,
        path: str,
        conditions: Sequence[QueryCondition],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp() -> str:
    return utc_now().isoformat()


def validate_collection_path(path: str) -> str:
    """Collection paths alternate collection/document segments and end on a collection."""
    if not isinstance(path, str) or not path.strip():
        raise RecordValidationError("Collection path cannot be empty.")
    segments = path.strip("/").split("/")
    if any(not segment.strip() for segment in segments):
        raise RecordValidationError(f"Malformed collection path: {path!r}")
    if len(segments) % 2 == 0:
        raise RecordValidationError(f"Path {path!r} points at a document, not a collection.")
    return "/".join(segments)


def validate_document_id(doc_id: str) -> str:
    if not isinstance(doc_id, str) or not doc_id.strip() or "/" in doc_id:
        raise RecordValidationError(f"Malformed document id: {doc_id!r}")
    return doc_id


def stamp_created(data: Dict[str, Any]) -> Dict[str, Any]:
    now = timestamp()
    payload = dict(data)
    payload[CREATED_AT] = now
    payload[UPDATED_AT] = now
    return payload


def stamp_updated(existing: Dict[str, Any], partial: Dict[str, Any]) -> Dict[str, Any]:
    now = timestamp()
    payload = {**existing, **partial}
    payload[CREATED_AT] = existing.get(CREATED_AT, now)
    payload[UPDATED_AT] = now
    return payload


def _field_value(document: Dict[str, Any], dotted: str) -> Any:
    current: Any = document
    for part in dotted.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _compare(left: Any, right: Any, op: str) -> bool:
    if left is None:
        return False
    try:
        if op == "<":
            return left < right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        if op == ">=":
            return left >= right
    except TypeError:
        return False
    raise RecordValidationError(f"Unsupported query operator: {op}")


def matches(document: Dict[str, Any], conditions: Iterable[QueryCondition]) -> bool:
    """Evaluate a conjunction of conditions against a document."""
    for condition in conditions:
        value = _field_value(document, condition.field)
        op = condition.op
        if op == "==":
            ok = value == condition.value
        elif op == "!=":
            ok = value is not None and value != condition.value
        elif op == "in":
            ok = value in list(condition.value or [])
        elif op == "array-contains":
            ok = isinstance(value, list) and condition.value in value
        elif op == "array-contains-any":
            ok = isinstance(value, list) and any(item in value for item in condition.value or [])
        else:
            ok = _compare(value, condition.value, op)
        if not ok:
            return False
    return True


def apply_query(
    documents: Iterable[Dict[str, Any]],
    conditions: Sequence[QueryCondition] = (),
    order_by: Optional[str] = None,
    descending: bool = True,
    limit: Optional[int] = None,
) -> List[Dict[str, Any]]:
    results = [doc for doc in documents if matches(doc, conditions)]
    if order_by:
        present = [doc for doc in results if _field_value(doc, order_by) is not None]
        missing = [doc for doc in results if _field_value(doc, order_by) is None]
        present.sort(key=lambda doc: _field_value(doc, order_by), reverse=descending)
        results = present + missing
    if limit is not None:
        if limit < 0:
            raise RecordValidationError("Query limit cannot be negative.")
        results = results[:limit]
    return results


@dataclass
class _Subscription:
    path: str
    doc_id: Optional[str]
    conditions: Tuple[QueryCondition, ...]
    on_change: ChangeCallback
    on_error: Optional[ErrorCallback]
    active: bool = field(default=True)


class ChangeNotifier:
    """In-process change feed for a document store."""

    def __init__(self) -> None:
        self._subscriptions: List[_Subscription] = []
        self._lock = RLock()

    def add(
        self,
        path: str,
        doc_id: Optional[str],
        conditions: Sequence[QueryCondition],
        on_change: ChangeCallback,
        on_error: Optional[ErrorCallback],
    ) -> Unsubscribe:
        subscription = _Subscription(
            path=validate_collection_path(path),
            doc_id=validate_document_id(doc_id) if doc_id is not None else None,
            conditions=tuple(conditions),
            on_change=on_change,
            on_error=on_error,
        )
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    async def publish(self, store: DocumentStore, changes: Iterable[Tuple[str, str]]) -> None:
        """Push fresh snapshots to every subscription touched by ``changes``."""
        changed = list(changes)
        with self._lock:
            targets = list(self._subscriptions)
        for subscription in targets:
            if not _is_affected(subscription, changed):
                continue
            if not subscription.active:
                continue
            try:
                if subscription.doc_id is not None:
                    payload: Any = await store.read(subscription.path, subscription.doc_id)
                else:
                    payload = await store.query(subscription.path, subscription.conditions)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Snapshot for %s failed: %s", subscription.path, exc)
                await _deliver_error(subscription, exc)
                continue
            if not subscription.active:
                continue
            try:
                await _maybe_await(subscription.on_change(payload))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Change listener failed for %s", subscription.path)
                await _deliver_error(subscription, exc)


def _is_affected(subscription: _Subscription, changes: List[Tuple[str, str]]) -> bool:
    for path, doc_id in changes:
        if path != subscription.path:
            continue
        if subscription.doc_id is None or subscription.doc_id == doc_id:
            return True
    return False


async def _deliver_error(subscription: _Subscription, exc: Exception) -> None:
    if subscription.on_error is None or not subscription.active:
        return
    try:
        await _maybe_await(subscription.on_error(exc))
    except Exception:  # noqa: BLE001
        logger.exception("Error listener failed for %s", subscription.path)


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


__all__ = [
    "BatchOperation",
    "CREATED_AT",
    "ChangeNotifier",
    "DocumentStore",
    "QueryCondition",
    "UPDATED_AT",
    "Unsubscribe",
    "apply_query",
    "matches",
    "stamp_created",
    "stamp_updated",
    "timestamp",
    "utc_now",
    "validate_collection_path",
    "validate_document_id",
]
