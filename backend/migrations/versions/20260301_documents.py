"""Create the tenant-partitioned documents table

Revision ID: 20260301_documents
Revises:
Create Date: 2026-03-01 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_documents"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "documents",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("partition", sa.String(length=120), nullable=False),
        sa.Column("kind", sa.String(length=64), nullable=False),
        sa.Column("rev", sa.String(length=64), nullable=False),
        sa.Column("body", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_documents_partition", "documents", ["partition"], unique=False)
    op.create_index("ix_documents_partition_kind", "documents", ["partition", "kind"], unique=False)


def downgrade():
    op.drop_index("ix_documents_partition_kind", table_name="documents")
    op.drop_index("ix_documents_partition", table_name="documents")
    op.drop_table("documents")
