"""
db/models/sync_cursor.py

Per-stream ingestion progress.
"""

from __future__ import annotations

from sqlalchemy import CheckConstraint, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class SyncStreamKey:
    CATALOG = "catalog"
    MEMBERSHIPS = "memberships"


class SyncCursor(Base, TimestampMixin):
    """
    ``last_page_processed = N`` means pages 1..N of the stream are durable.
    """

    __tablename__ = "sync_cursors"

    stream_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_page_processed: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    __table_args__ = (
        CheckConstraint("last_page_processed >= 0", name="ck_sync_cursors_last_page_non_negative"),
    )
