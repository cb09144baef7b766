"""
db/repositories/upsert.py

Unordered bulk upsert with per-record failure isolation.

The whole batch is tried as one statement inside a savepoint. When the
database rejects it for a record-level reason, every record is retried in
its own savepoint so one bad row cannot take its siblings down with it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.sql.expression import Executable
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.commerce import UpsertResult
from db.repositories.errors import PersistenceError

logger = logging.getLogger(__name__)

_RECORD_LEVEL_ERRORS = (IntegrityError, DataError)

StatementBuilder = Callable[[Sequence[dict[str, Any]]], Executable]


def dedupe_by_key(payloads: Sequence[dict[str, Any]], key: str) -> list[dict[str, Any]]:
    """Last occurrence wins; PostgreSQL refuses to upsert one row twice per statement."""
    seen: dict[Any, dict[str, Any]] = {}
    for payload in payloads:
        seen[payload[key]] = payload
    return list(seen.values())


def isolated_upsert(
    session: Session,
    build_statement: StatementBuilder,
    payloads: Sequence[dict[str, Any]],
    *,
    label: str,
) -> UpsertResult:
    if not payloads:
        return UpsertResult(written=0)

    try:
        with session.begin_nested():
            session.execute(build_statement(payloads))
        return UpsertResult(written=len(payloads))
    except _RECORD_LEVEL_ERRORS as exc:
        logger.warning(
            "Bulk upsert rejected, retrying per record target=%s rows=%s error=%s",
            label,
            len(payloads),
            exc.orig if exc.orig is not None else exc,
        )
    except SQLAlchemyError as exc:
        raise PersistenceError(f"{label}: bulk upsert failed: {exc}") from exc

    written = 0
    failed = 0
    for payload in payloads:
        try:
            with session.begin_nested():
                session.execute(build_statement([payload]))
            written += 1
        except _RECORD_LEVEL_ERRORS as exc:
            failed += 1
            logger.warning(
                "Skipping record rejected by store target=%s external_id=%s error=%s",
                label,
                payload.get("external_id"),
                exc.orig if exc.orig is not None else exc,
            )
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{label}: upsert failed: {exc}") from exc

    return UpsertResult(written=written, failed=failed)
