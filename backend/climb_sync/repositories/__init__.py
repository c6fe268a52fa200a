from .documents import SqlDocumentStore

__all__ = ["SqlDocumentStore"]
