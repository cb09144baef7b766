"""
db/repositories/catalog_repository.py

Persistence layer for mirrored catalog entries.

The caller controls commit/rollback; this repository never commits on its
own.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.commerce import CatalogEntryInput, UpsertResult
from db.models.catalog_entry import CatalogEntry
from db.repositories.errors import PersistenceError
from db.repositories.upsert import dedupe_by_key, isolated_upsert

logger = logging.getLogger(__name__)

_UPSERT_CONSTRAINT = "uq_catalog_entries_external_id"


def build_catalog_upsert(payloads: Sequence[dict[str, Any]]) -> Any:
    """
    INSERT .. ON CONFLICT (external_id) DO UPDATE for a batch of entries.

    A refresh rewrites title, visibility and the active-user seed.
    """

    stmt = insert(CatalogEntry).values(list(payloads))
    return stmt.on_conflict_do_update(
        constraint=_UPSERT_CONSTRAINT,
        set_={
            "title": stmt.excluded.title,
            "visibility": stmt.excluded.visibility,
            "active_users": stmt.excluded.active_users,
            "updated_at": func.now(),
        },
    )


class CatalogEntryRepository:
    """
    Repository for writing and querying CatalogEntry rows.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def upsert_entries(self, records: Sequence[CatalogEntryInput]) -> UpsertResult:
        payloads = dedupe_by_key(
            [
                {
                    "id": uuid.uuid4(),
                    "external_id": record.external_id,
                    "title": record.title,
                    "visibility": record.visibility,
                    "active_users": record.active_users_seed,
                }
                for record in records
            ],
            "external_id",
        )
        return isolated_upsert(self._session, build_catalog_upsert, payloads, label="catalog_entries")

    def increment_active_users(self, counts: Mapping[str, int]) -> int:
        """
        Apply ``active_users += delta`` to existing entries only.

        Unknown catalog ids are skipped; nothing is inserted. Returns the
        number of rows updated.
        """

        touched = 0
        for external_id in sorted(counts):
            delta = counts[external_id]
            if delta <= 0:
                continue
            stmt = (
                update(CatalogEntry)
                .where(CatalogEntry.external_id == external_id)
                .values(active_users=CatalogEntry.active_users + delta, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            try:
                result = self._session.execute(stmt)
            except SQLAlchemyError as exc:
                raise PersistenceError(f"catalog_entries: increment failed for {external_id}: {exc}") from exc
            if result.rowcount:
                touched += result.rowcount
            else:
                logger.debug("No local catalog entry for external_id=%s; increment skipped", external_id)
        return touched

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_external_id(self, external_id: str) -> CatalogEntry | None:
        stmt = select(CatalogEntry).where(CatalogEntry.external_id == external_id)
        return self._session.scalars(stmt).one_or_none()

    def list_entries(self, *, offset: int, limit: int) -> list[CatalogEntry]:
        stmt = (
            select(CatalogEntry)
            .order_by(CatalogEntry.created_at, CatalogEntry.id)
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def count_entries(self) -> int:
        return int(self._session.scalar(select(func.count()).select_from(CatalogEntry)) or 0)
