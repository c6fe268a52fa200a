"""Document store table."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261016_01_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("collection_path", sa.String(length=512), nullable=False),
        sa.Column("document_id", sa.String(length=255), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.UniqueConstraint("collection_path", "document_id", name="uq_documents_path_id"),
    )
    op.create_index("ix_documents_collection_path", "documents", ["collection_path"])


def downgrade() -> None:
    op.drop_index("ix_documents_collection_path", table_name="documents")
    op.drop_table("documents")
