"""
db/models/catalog_entry.py

Mirrored upstream product (catalog entry).
"""

from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class CatalogEntry(Base, TimestampMixin):
    __tablename__ = "catalog_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    external_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Upstream-assigned product id",
    )
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    visibility: Mapped[str | None] = mapped_column(String(64), nullable=True)
    active_users: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Derived from membership ingestion; incremented, never recounted",
    )

    __table_args__ = (
        UniqueConstraint("external_id"),
        CheckConstraint("active_users >= 0", name="ck_catalog_entries_active_users_non_negative"),
    )
