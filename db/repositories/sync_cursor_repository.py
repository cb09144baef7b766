"""
db/repositories/sync_cursor_repository.py

Persisted per-stream ingestion cursors.

Sweepers in separate processes coordinate through a transaction-scoped
advisory lock keyed by stream; see ``claim_stream``.
"""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.sync_cursor import SyncCursor
from db.repositories.errors import PersistenceError

_LOCK_NAMESPACE = "sync_cursor"


class SyncCursorRepository:
    """
    Read and upsert cursors; no delete is exposed.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def claim_stream(self, stream_key: str) -> bool:
        """
        Try to take the stream's advisory lock for the current transaction.

        Returns False without waiting when another transaction holds it. The
        lock is released when the transaction commits or rolls back.
        """

        stmt = select(func.pg_try_advisory_xact_lock(func.hashtext(f"{_LOCK_NAMESPACE}:{stream_key}")))
        try:
            return bool(self._session.scalar(stmt))
        except SQLAlchemyError as exc:
            raise PersistenceError(f"sync_cursors: failed to lock {stream_key}: {exc}") from exc

    def get_cursor(self, stream_key: str) -> int | None:
        stmt = select(SyncCursor.last_page_processed).where(SyncCursor.stream_key == stream_key)
        return self._session.scalars(stmt).one_or_none()

    def set_cursor(self, stream_key: str, page: int) -> None:
        if page < 0:
            raise ValueError(f"Cursor page must be non-negative, got {page}.")
        stmt = (
            insert(SyncCursor)
            .values(stream_key=stream_key, last_page_processed=page)
            .on_conflict_do_update(
                index_elements=[SyncCursor.stream_key],
                set_={"last_page_processed": page, "updated_at": func.now()},
            )
        )
        try:
            self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"sync_cursors: failed to set {stream_key}={page}: {exc}") from exc
