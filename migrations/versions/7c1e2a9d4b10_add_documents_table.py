"""add_documents_table

Create `documents` table holding JSON documents per collection
(chantiers, clients, ...).

Revision ID: 7c1e2a9d4b10
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "7c1e2a9d4b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("collection", sa.String(length=100), nullable=False),
            sa.Column("doc_id", sa.String(length=200), nullable=False),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc_id"),
        )
        op.create_index("ix_documents_collection", "documents", ["collection"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "documents" in existing_tables:
        op.drop_index("ix_documents_collection", table_name="documents")
        op.drop_table("documents")
