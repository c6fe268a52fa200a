"""SQLAlchemy-backed implementation of the remote document store."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import (
    DataError,
    DisconnectionError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    ProgrammingError,
    SQLAlchemyError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from ..db.models import DocumentModel
from ..db.session import Database
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
from ..errors import (
    ConnectivityError,
    DocumentNotFoundError,
    RecordValidationError,
    StorePermissionError,
    SyncError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PERMISSION_MARKERS = ("permission denied", "readonly database", "read-only", "insufficient privilege")


def translate_error(exc: SQLAlchemyError, operation: str) -> SyncError:
    message = str(exc).lower()
    if any(marker in message for marker in _PERMISSION_MARKERS):
        return StorePermissionError(f"{operation} rejected: {exc}")
    if isinstance(exc, (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError)):
        return ConnectivityError(f"{operation} failed, document store unreachable: {exc}")
    if isinstance(exc, (IntegrityError, DataError)):
        return RecordValidationError(f"{operation} rejected record: {exc}")
    if isinstance(exc, ProgrammingError):
        return StorePermissionError(f"{operation} rejected: {exc}")
    return SyncError(f"{operation} failed: {exc}")


class SqlDocumentStore:
    """Documents keyed by collection path and id, one JSON payload per row."""

    def __init__(self, database: Database) -> None:
        self._database = database
        self._notifier = ChangeNotifier()

    async def create(self, path: str, doc_id: str, data: Dict[str, Any]) -> None:
        path = validate_collection_path(path)
        validate_document_id(doc_id)
        payload = stamp_created(data)
        await self._run("create", self._write_sync, path, doc_id, payload)
        logger.debug("Document created: %s/%s", path, doc_id)
        await self._notifier.publish(self, [(path, doc_id)])

    async def read(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        path = validate_collection_path(path)
        validate_document_id(doc_id)
        return await self._run("read", self._read_sync, path, doc_id)

    async def update(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        path = validate_collection_path(path)
        validate_document_id(doc_id)
        await self._run("update", self._update_sync, path, doc_id, partial)
        await self._notifier.publish(self, [(path, doc_id)])

    async def delete(self, path: str, doc_id: str) -> None:
        path = validate_collection_path(path)
        validate_document_id(doc_id)
        await self._run("delete", self._delete_sync, path, doc_id)
        await self._notifier.publish(self, [(path, doc_id)])

    async def query(
        self,
        path: str,
        conditions: Sequence[QueryCondition] = (),
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        path = validate_collection_path(path)
        documents = await self._run("query", self._collection_sync, path)
        results = apply_query(documents, conditions, order_by, descending, limit)
        logger.debug("Query completed: %s (%d documents)", path, len(results))
        return results

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
        await self._run("batch_write", self._batch_sync, prepared)
        logger.debug("Batch write completed: %d operations", len(prepared))
        await self._notifier.publish(self, [(op.path, op.doc_id) for op in prepared])

    def subscribe_document(self, path, doc_id, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        return self._notifier.add(path, doc_id, (), on_change, on_error)

    def subscribe_query(self, path, conditions, on_change, on_error=None) -> Unsubscribe:  # type: ignore[no-untyped-def]
        return self._notifier.add(path, None, conditions, on_change, on_error)

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as exc:
            logger.warning("Document store %s failed: %s", operation, exc)
            raise translate_error(exc, operation) from exc

    @staticmethod
    def _find(session: Session, path: str, doc_id: str) -> Optional[DocumentModel]:
        stmt = select(DocumentModel).where(
            DocumentModel.collection_path == path,
            DocumentModel.document_id == doc_id,
        )
        return session.execute(stmt).scalar_one_or_none()

    def _apply_set(self, session: Session, path: str, doc_id: str, payload: Dict[str, Any]) -> None:
        model = self._find(session, path, doc_id)
        if model is None:
            session.add(DocumentModel(collection_path=path, document_id=doc_id, data=payload))
        else:
            model.data = payload

    def _apply_update(self, session: Session, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        model = self._find(session, path, doc_id)
        if model is None:
            raise DocumentNotFoundError(path, doc_id)
        model.data = stamp_updated(dict(model.data or {}), partial)

    @staticmethod
    def _apply_delete(session: Session, path: str, doc_id: str) -> None:
        session.execute(
            delete(DocumentModel).where(
                DocumentModel.collection_path == path,
                DocumentModel.document_id == doc_id,
            )
        )

    def _write_sync(self, path: str, doc_id: str, payload: Dict[str, Any]) -> None:
        with self._database.session_scope() as session:
            self._apply_set(session, path, doc_id, payload)

    def _read_sync(self, path: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._database.session_scope(commit=False) as session:
            model = self._find(session, path, doc_id)
            if model is None:
                logger.debug("Document not found: %s/%s", path, doc_id)
                return None
            return dict(model.data or {})

    def _update_sync(self, path: str, doc_id: str, partial: Dict[str, Any]) -> None:
        with self._database.session_scope() as session:
            self._apply_update(session, path, doc_id, partial)

    def _delete_sync(self, path: str, doc_id: str) -> None:
        with self._database.session_scope() as session:
            self._apply_delete(session, path, doc_id)

    def _collection_sync(self, path: str) -> List[Dict[str, Any]]:
        with self._database.session_scope(commit=False) as session:
            stmt = select(DocumentModel).where(DocumentModel.collection_path == path)
            models = session.execute(stmt).scalars().all()
            return [{"id": model.document_id, **(model.data or {})} for model in models]

    def _batch_sync(self, operations: List[BatchOperation]) -> None:
        with self._database.session_scope() as session:
            for op in operations:
                if op.kind == "create":
                    self._apply_set(session, op.path, op.doc_id, stamp_created(op.data or {}))
                elif op.kind == "update":
                    self._apply_update(session, op.path, op.doc_id, op.data or {})
                elif op.kind == "delete":
                    self._apply_delete(session, op.path, op.doc_id)
                else:
                    raise RecordValidationError(f"Unsupported batch operation: {op.kind}")
                session.flush()


__all__ = ["SqlDocumentStore", "translate_error"]
