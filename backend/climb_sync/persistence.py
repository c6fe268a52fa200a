"""Routes document operations to the remote store or the local mirror."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from .cache.local_documents import LocalDocumentStore
from .document_store import BatchOperation, DocumentStore, QueryCondition, Unsubscribe
from .errors import DocumentNotFoundError
from .mode import ModeResolver
from .telemetry import SyncEvent, emit_event

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceRouter:
    """Same contract as :class:`DocumentStore`; picks the backend per call.

    Restricted mode goes straight to the local mirror. Full mode tries the
    remote store once and re-runs the operation locally on any failure other
    than a missing document.
    """

    def __init__(self, remote: DocumentStore, local: LocalDocumentStore, mode: ModeResolver) -> None:
        self._remote = remote
        self._local = local
        self._mode = mode

    @property
    def local(self) -> LocalDocumentStore:
        return self._local

    @property
    def remote(self) -> DocumentStore:
        return self._remote

    def uses_local(self) -> bool:
        return self._mode.is_restricted()

    async def _route(
        self,
        operation: str,
        path: str,
        call: Callable[[DocumentStore], Awaitable[T]],
    ) -> T:
        if self._mode.is_restricted():
            return await call(self._local)
        try:
            return await call(self._remote)
        except DocumentNotFoundError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Remote %s on %s failed, using local cache: %s", operation, path, exc)
            emit_event(
                SyncEvent.PERSISTENCE_FALLBACK,
                operation=operation,
                path=path,
                error=type(exc).__name__,
                detail=str(exc),
            )
            return await call(self._local)

    async def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self._route("create", path, lambda store: store.create(path, doc_id, data))

    async def read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await self._route("read", path, lambda store: store.read(path, doc_id))

    async def update(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        await self._route("update", path, lambda store: store.update(path, doc_id, partial))

    async def delete(self, path: str, doc_id: str) -> None:
        await self._route("delete", path, lambda store: store.delete(path, doc_id))

    async def query(
        self,
        path: str,
        conditions: Sequence[QueryCondition] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        return await self._route(
            "query",
            path,
            lambda store: store.query(path, conditions, order_by=order_by, descending=descending, limit=limit),
        )

    async def batch_write(self, operations: Sequence[BatchOperation]) -> None:
        operations = list(operations)
        path = operations[0].path if operations else ""
        await self._route("batch_write", path, lambda store: store.batch_write(operations))

    def subscribe_document(self, path, doc_id, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        store: DocumentStore = self._local if self._mode.is_restricted() else self._remote
        return store.subscribe_document(path, doc_id, on_change, on_error)

    def subscribe_query(self, path, conditions, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        store: DocumentStore = self._local if self._mode.is_restricted() else self._remote
        return store.subscribe_query(path, conditions, on_change, on_error)


__all__ = ["PersistenceRouter"]
