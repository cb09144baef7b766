"""
db/models/membership.py

Mirrored upstream membership.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class Membership(Base, TimestampMixin):
    __tablename__ = "memberships"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    external_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        comment="Upstream-assigned membership id",
    )
    user_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Upstream user id; message send target",
    )
    catalog_entry_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Upstream product id; weak reference, no foreign key",
    )
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    __table_args__ = (
        UniqueConstraint("external_id"),
        Index("ix_memberships_catalog_entry_id_id", "catalog_entry_id", "id"),
    )
