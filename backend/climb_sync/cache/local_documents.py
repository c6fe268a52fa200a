"""Document store mirror kept inside the local cache."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..document_store import (
    BatchOperation,
    ChangeNotifier,
    QueryCondition,
    Unsubscribe,
    apply_query,
    stamp_created,
    stamp_updated,
    validate_collection_path,
    validate_document_id,
)
from ..errors import DocumentNotFoundError, RecordValidationError
from .local_store import DOCUMENTS_PREFIX, LocalCacheStore, documents_key

logger = logging.getLogger(__name__)


def _apply(entries: Dict[str, Any], op: BatchOperation) -> None:
    key = documents_key(op.path)
    collection = entries.get(key)
    if not isinstance(collection, dict):
        collection = {}
    if op.kind == "create":
        collection[op.doc_id] = stamp_created(op.data or {})
    elif op.kind == "update":
        existing = collection.get(op.doc_id)
        if existing is None:
            raise DocumentNotFoundError(op.path, op.doc_id)
        collection[op.doc_id] = stamp_updated(existing, op.data or {})
    elif op.kind == "delete":
        collection.pop(op.doc_id, None)
    else:
        raise RecordValidationError(f"Unsupported batch operation: {op.kind}")
    if collection:
        entries[key] = collection
    else:
        entries.pop(key, None)


class LocalDocumentStore:
    """Same contract as the remote store, persisted under ``documents:{path}`` keys."""

    def __init__(self, cache: LocalCacheStore) -> None:
        self._cache = cache
        self._notifier = ChangeNotifier()

    async def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.batch_write([BatchOperation("create", path, doc_id, data)])

    async def read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        path = validate_collection_path(path)
        validate_document_id(doc_id)
        collection = self._cache.get(documents_key(path)) or {}
        return collection.get(doc_id)

    async def update(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        await self.batch_write([BatchOperation("update", path, doc_id, partial)])

    async def delete(self, path: str, doc_id: str) -> None:
        await self.batch_write([BatchOperation("delete", path, doc_id)])

    async def query(
        self,
        path: str,
        conditions: Sequence[QueryCondition] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        path = validate_collection_path(path)
        collection = self._cache.get(documents_key(path)) or {}
        documents = [{"id": doc_id, **data} for doc_id, data in collection.items()]
        return apply_query(documents, conditions, order_by, descending, limit)

    async def batch_write(self, operations: Sequence[BatchOperation]) -> None:
        prepared = [
            BatchOperation(
                kind=op.kind,
                path=validate_collection_path(op.path),
                doc_id=validate_document_id(op.doc_id),
                data=op.data,
            )
            for op in operations
        ]
        if not prepared:
            return

        def _write(entries: Dict[str, Any]) -> None:
            for op in prepared:
                _apply(entries, op)

        self._cache.mutate(_write)
        logger.debug("Local batch write applied: %d operations", len(prepared))
        await self._notifier.publish(self, [(op.path, op.doc_id) for op in prepared])

    def subscribe_document(self, path, doc_id, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        return self._notifier.add(path, doc_id, (), on_change, on_error)

    def subscribe_query(self, path, conditions, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        return self._notifier.add(path, None, conditions, on_change, on_error)

    def collection_paths(self, prefix: str = "") -> List[str]:
        """Collection paths currently mirrored, optionally below ``prefix``."""
        paths = [key[len(DOCUMENTS_PREFIX):] for key in self._cache.keys(DOCUMENTS_PREFIX)]
        return [path for path in paths if not prefix or path == prefix or path.startswith(prefix + "/")]

    def purge(self, prefix: str) -> None:
        """Drop every mirrored collection at or below ``prefix``."""
        self._cache.delete_many(documents_key(path) for path in self.collection_paths(prefix))


__all__ = ["LocalDocumentStore"]
