"""create catalog_entries, memberships and sync_cursors tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "catalog_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False, comment="Upstream-assigned product id"),
        sa.Column("title", sa.String(length=512), nullable=True),
        sa.Column("visibility", sa.String(length=64), nullable=True),
        sa.Column(
            "active_users",
            sa.Integer(),
            server_default="0",
            nullable=False,
            comment="Derived from membership ingestion; incremented, never recounted",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("active_users >= 0", name="ck_catalog_entries_active_users_non_negative"),
        sa.PrimaryKeyConstraint("id", name="pk_catalog_entries"),
        sa.UniqueConstraint("external_id", name="uq_catalog_entries_external_id"),
    )

    op.create_table(
        "memberships",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("external_id", sa.String(length=128), nullable=False, comment="Upstream-assigned membership id"),
        sa.Column("user_id", sa.String(length=128), nullable=True, comment="Upstream user id; message send target"),
        sa.Column(
            "catalog_entry_id",
            sa.String(length=128),
            nullable=True,
            comment="Upstream product id; weak reference, no foreign key",
        ),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("external_id", name="uq_memberships_external_id"),
    )
    op.create_index(
        "ix_memberships_catalog_entry_id_id",
        "memberships",
        ["catalog_entry_id", "id"],
        unique=False,
    )

    op.create_table(
        "sync_cursors",
        sa.Column("stream_key", sa.String(length=64), nullable=False),
        sa.Column("last_page_processed", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("last_page_processed >= 0", name="ck_sync_cursors_last_page_non_negative"),
        sa.PrimaryKeyConstraint("stream_key", name="pk_sync_cursors"),
    )


def downgrade() -> None:
    op.drop_table("sync_cursors")
    op.drop_index("ix_memberships_catalog_entry_id_id", table_name="memberships")
    op.drop_table("memberships")
    op.drop_table("catalog_entries")
