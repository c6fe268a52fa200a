"""Error taxonomy shared by the store, router and integration pipeline."""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for failures raised by the sync engine."""


class ConnectivityError(SyncError):
    """The remote document store could not be reached."""


class StorePermissionError(SyncError):
    """A read or write was rejected by the remote document store."""


class RecordValidationError(SyncError):
    """A path or record does not match the expected schema."""


class GenerationError(SyncError):
    """The content generator failed or returned an unusable payload."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.stage = stage


class DocumentNotFoundError(SyncError, LookupError):
    """An expected document is absent. Usually handled as an empty result."""

    def __init__(self, path: str, doc_id: str) -> None:
        super().__init__(f"Document not found: {path}/{doc_id}")
        self.path = path
        self.doc_id = doc_id


__all__ = [
    "ConnectivityError",
    "DocumentNotFoundError",
    "GenerationError",
    "RecordValidationError",
    "StorePermissionError",
    "SyncError",
]
