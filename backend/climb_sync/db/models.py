"""ORM models backing the remote document store."""

from __future__ import annotations

from typing import Any

from sqlalchemy import Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base, TimestampMixin

JSONType = JSON


class DocumentModel(TimestampMixin, Base):
    """One document inside a hierarchical collection path (``users/{uid}/quests``)."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection_path", "document_id", name="uq_documents_path_id"),
        Index("ix_documents_collection_path", "collection_path"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_path: Mapped[str] = mapped_column(String(512), nullable=False)
    document_id: Mapped[str] = mapped_column(String(255), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)


__all__ = ["DocumentModel"]
