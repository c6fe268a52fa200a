"""Database utilities for the remote document store."""

from .base import Base, TimestampMixin
from .models import DocumentModel
from .session import Database, build_engine

__all__ = [
    "Base",
    "Database",
    "DocumentModel",
    "TimestampMixin",
    "build_engine",
]
