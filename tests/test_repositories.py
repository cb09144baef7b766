"""
tests/test_repositories.py

Repository SQL and failure isolation, checked by compiling statements with
the PostgreSQL dialect and driving a mocked session.
"""

from __future__ import annotations

import uuid
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import IntegrityError, OperationalError

from app.domain.commerce import CatalogEntryInput, MembershipInput
from db.repositories.catalog_repository import CatalogEntryRepository, build_catalog_upsert
from db.repositories.errors import PersistenceError
from db.repositories.membership_repository import (
    MembershipRepository,
    build_membership_upsert,
    tally_catalog_references,
)
from db.repositories.sync_cursor_repository import SyncCursorRepository
from db.repositories.upsert import dedupe_by_key, isolated_upsert


def _sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


@pytest.fixture()
def session() -> MagicMock:
    mock = MagicMock()
    mock.begin_nested.return_value.__exit__.return_value = False
    return mock


# ---------------------------------------------------------------------------
# Upsert statements
# ---------------------------------------------------------------------------


class TestUpsertStatements:
    def test_catalog_upsert_targets_external_id_constraint(self) -> None:
        sql = _sql(build_catalog_upsert([{"id": uuid.uuid4(), "external_id": "p1", "title": "A"}]))

        assert "INSERT INTO catalog_entries" in sql
        assert "ON CONFLICT ON CONSTRAINT uq_catalog_entries_external_id DO UPDATE" in sql
        assert "active_users = excluded.active_users" in sql

    def test_membership_upsert_targets_external_id_constraint(self) -> None:
        sql = _sql(build_membership_upsert([{"id": uuid.uuid4(), "external_id": "m1", "user_id": "u1"}]))

        assert "ON CONFLICT ON CONSTRAINT uq_memberships_external_id DO UPDATE" in sql
        assert "catalog_entry_id = excluded.catalog_entry_id" in sql

    def test_dedupe_keeps_last_occurrence(self) -> None:
        payloads = [
            {"external_id": "p1", "title": "old"},
            {"external_id": "p2", "title": "other"},
            {"external_id": "p1", "title": "new"},
        ]

        deduped = dedupe_by_key(payloads, "external_id")

        assert [row["title"] for row in deduped] == ["new", "other"]


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestIsolatedUpsert:
    def _payloads(self, count: int) -> list[dict]:
        return [{"external_id": f"p{index}"} for index in range(count)]

    def test_bulk_statement_success(self, session) -> None:
        result = isolated_upsert(session, lambda rows: rows, self._payloads(3), label="test")

        assert (result.written, result.failed) == (3, 0)
        session.execute.assert_called_once()

    def test_record_level_rejection_falls_back_per_record(self, session) -> None:
        rejected = IntegrityError("INSERT", {}, Exception("value too long"))
        session.execute.side_effect = [rejected, None, rejected, None]

        result = isolated_upsert(session, lambda rows: rows, self._payloads(3), label="test")

        assert (result.written, result.failed) == (2, 1)
        assert session.execute.call_count == 4

    def test_connection_failure_raises_persistence_error(self, session) -> None:
        session.execute.side_effect = OperationalError("INSERT", {}, Exception("server closed"))

        with pytest.raises(PersistenceError):
            isolated_upsert(session, lambda rows: rows, self._payloads(2), label="test")

    def test_empty_batch_touches_nothing(self, session) -> None:
        result = isolated_upsert(session, lambda rows: rows, [], label="test")

        assert result.written == 0
        session.execute.assert_not_called()

    def test_catalog_repository_dedupes_before_writing(self, session) -> None:
        records = [
            CatalogEntryInput(external_id="p1", title="first"),
            CatalogEntryInput(external_id="p1", title="second"),
        ]

        result = CatalogEntryRepository(session).upsert_entries(records)

        assert result.written == 1


# ---------------------------------------------------------------------------
# Active-user increments
# ---------------------------------------------------------------------------


class TestIncrements:
    def test_tally_counts_references(self) -> None:
        records = [
            MembershipInput(external_id="m1", catalog_entry_id="p1"),
            MembershipInput(external_id="m2", catalog_entry_id="p1"),
            MembershipInput(external_id="m3", catalog_entry_id="p2"),
            MembershipInput(external_id="m4", catalog_entry_id=None),
            MembershipInput(external_id="m5", catalog_entry_id="p1"),
        ]

        assert tally_catalog_references(records) == {"p1": 3, "p2": 1}

    def test_one_update_per_positive_delta(self, session) -> None:
        session.execute.return_value.rowcount = 1

        touched = CatalogEntryRepository(session).increment_active_users({"p2": 1, "p1": 3, "p3": 0})

        assert touched == 2
        statements = [_sql(call.args[0]) for call in session.execute.call_args_list]
        assert len(statements) == 2
        for sql in statements:
            assert sql.startswith("UPDATE catalog_entries SET active_users=")
            assert "catalog_entries.active_users +" in sql
        assert "catalog_entries.external_id" in statements[0]

    def test_unknown_ids_are_skipped(self, session) -> None:
        session.execute.return_value.rowcount = 0

        assert CatalogEntryRepository(session).increment_active_users({"ghost": 2}) == 0

    def test_store_error_raises_persistence_error(self, session) -> None:
        session.execute.side_effect = OperationalError("UPDATE", {}, Exception("gone"))

        with pytest.raises(PersistenceError):
            CatalogEntryRepository(session).increment_active_users({"p1": 1})


# ---------------------------------------------------------------------------
# Cursors
# ---------------------------------------------------------------------------


class TestCursors:
    def test_set_cursor_upserts_by_stream_key(self, session) -> None:
        SyncCursorRepository(session).set_cursor("catalog", 4)

        sql = _sql(session.execute.call_args.args[0])
        assert "INSERT INTO sync_cursors" in sql
        assert "ON CONFLICT (stream_key) DO UPDATE" in sql

    def test_negative_cursor_rejected(self, session) -> None:
        with pytest.raises(ValueError):
            SyncCursorRepository(session).set_cursor("catalog", -1)
        session.execute.assert_not_called()

    def test_claim_takes_transaction_scoped_advisory_lock(self, session) -> None:
        session.scalar.return_value = False

        assert SyncCursorRepository(session).claim_stream("memberships") is False
        sql = _sql(session.scalar.call_args.args[0])
        assert "pg_try_advisory_xact_lock(hashtext(" in sql

    def test_missing_cursor_reads_none(self, session) -> None:
        session.scalars.return_value.one_or_none.return_value = None

        assert SyncCursorRepository(session).get_cursor("memberships") is None


# ---------------------------------------------------------------------------
# Recipient chunks
# ---------------------------------------------------------------------------


class TestRecipientChunks:
    def test_keyset_pages_until_short_chunk(self, session) -> None:
        rows = [SimpleNamespace(id=uuid.UUID(int=index)) for index in range(1, 4)]
        session.scalars.return_value.all.side_effect = [rows[:2], rows[2:]]

        chunks = list(MembershipRepository(session).iter_recipient_chunks("p1", chunk_size=2))

        assert [len(chunk) for chunk in chunks] == [2, 1]
        first_sql = _sql(session.scalars.call_args_list[0].args[0])
        second_sql = _sql(session.scalars.call_args_list[1].args[0])
        assert "memberships.id >" not in first_sql
        assert "memberships.id >" in second_sql
        assert "ORDER BY memberships.id" in second_sql

    def test_exact_multiple_ends_on_empty_chunk(self, session) -> None:
        rows = [SimpleNamespace(id=uuid.UUID(int=index)) for index in range(1, 3)]
        session.scalars.return_value.all.side_effect = [rows, []]

        chunks = list(MembershipRepository(session).iter_recipient_chunks("p1", chunk_size=2))

        assert len(chunks) == 1
        assert session.scalars.call_count == 2
