"""
db/repositories/membership_repository.py

Persistence layer for mirrored memberships and recipient enumeration.
"""

from __future__ import annotations

import uuid
from collections import Counter
from collections.abc import Iterable, Iterator, Mapping, Sequence
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.orm import Session

from app.domain.commerce import MembershipInput, UpsertResult
from db.models.membership import Membership
from db.repositories.upsert import dedupe_by_key, isolated_upsert

_UPSERT_CONSTRAINT = "uq_memberships_external_id"


def build_membership_upsert(payloads: Sequence[dict[str, Any]]) -> Any:
    stmt = insert(Membership).values(list(payloads))
    return stmt.on_conflict_do_update(
        constraint=_UPSERT_CONSTRAINT,
        set_={
            "user_id": stmt.excluded.user_id,
            "catalog_entry_id": stmt.excluded.catalog_entry_id,
            "email": stmt.excluded.email,
            "updated_at": func.now(),
        },
    )


def tally_catalog_references(records: Iterable[MembershipInput]) -> dict[str, int]:
    """
    Count memberships per referenced catalog id. Memberships without a
    catalog id contribute nothing.
    """

    counts: Counter[str] = Counter(
        record.catalog_entry_id for record in records if record.catalog_entry_id
    )
    return dict(counts)


class MembershipRepository:
    """
    Repository for writing and querying Membership rows.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def upsert_memberships(self, records: Sequence[MembershipInput]) -> UpsertResult:
        payloads = dedupe_by_key(
            [
                {
                    "id": uuid.uuid4(),
                    "external_id": record.external_id,
                    "user_id": record.user_id,
                    "catalog_entry_id": record.catalog_entry_id,
                    "email": record.email,
                }
                for record in records
            ],
            "external_id",
        )
        return isolated_upsert(self._session, build_membership_upsert, payloads, label="memberships")

    def count_for_catalog_entry(self, catalog_entry_id: str) -> int:
        stmt = select(func.count()).select_from(Membership).where(Membership.catalog_entry_id == catalog_entry_id)
        return int(self._session.scalar(stmt) or 0)

    def list_for_catalog_entry(self, catalog_entry_id: str, *, offset: int, limit: int) -> list[Membership]:
        stmt = (
            select(Membership)
            .where(Membership.catalog_entry_id == catalog_entry_id)
            .order_by(Membership.id)
            .offset(max(0, offset))
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def iter_recipient_chunks(self, catalog_entry_id: str, *, chunk_size: int) -> Iterator[list[Membership]]:
        """
        Yield memberships of one catalog entry in primary-key order, at most
        ``chunk_size`` at a time, without loading the full set.
        """

        size = max(1, chunk_size)
        last_id: uuid.UUID | None = None
        while True:
            stmt = (
                select(Membership)
                .where(Membership.catalog_entry_id == catalog_entry_id)
                .order_by(Membership.id)
                .limit(size)
            )
            if last_id is not None:
                stmt = stmt.where(Membership.id > last_id)
            chunk = list(self._session.scalars(stmt).all())
            if not chunk:
                return
            yield chunk
            if len(chunk) < size:
                return
            last_id = chunk[-1].id

    def count_by_catalog_entries(self, catalog_entry_ids: Sequence[str]) -> Mapping[str, int]:
        """
        Ground-truth membership counts for the given catalog ids, straight
        from the membership rows.
        """

        if not catalog_entry_ids:
            return {}
        stmt = (
            select(Membership.catalog_entry_id, func.count())
            .where(Membership.catalog_entry_id.in_(list(catalog_entry_ids)))
            .group_by(Membership.catalog_entry_id)
        )
        return {row[0]: int(row[1]) for row in self._session.execute(stmt).all()}
