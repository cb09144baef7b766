"""
app/services/ingestion_service.py

Resumable, paginated ingestion of upstream collections.

Each stream sweeps its collection page by page, strictly in order:

    resume from cursor -> fetch page -> write page + advance cursor -> repeat

A page's writes and its cursor advance commit in one transaction, so a
cursor value N always means pages 1..N are durable. Any fetch or write
failure aborts the stream's sweep and leaves the cursor where it was; the
next scheduled sweep resumes from there.

Every page transaction first claims the stream (an advisory lock) and
re-reads the cursor. When another sweeper holds the stream or has moved
the cursor since this sweep last saw it, the sweep stops without writing,
so concurrent sweepers in separate processes never apply a page twice.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.connectors.base import UpstreamError
from app.connectors.commerce_client import CommerceAPIClient
from app.domain.commerce import SweepSummary, UpsertResult, UpstreamPage
from app.logging_utils import log_event
from db.models.sync_cursor import SyncStreamKey
from db.repositories.catalog_repository import CatalogEntryRepository
from db.repositories.errors import PersistenceError
from db.repositories.membership_repository import MembershipRepository, tally_catalog_references
from db.repositories.sync_cursor_repository import SyncCursorRepository

logger = logging.getLogger(__name__)

_SWEEP_ABORTING_ERRORS = (UpstreamError, PersistenceError, SQLAlchemyError)


class IngestionStream(ABC):
    """
    One upstream collection mirrored into the local store.
    """

    key: str

    @abstractmethod
    def fetch_page(self, page: int) -> UpstreamPage[Any]:
        """
        Fetch one page; raise UpstreamError when the page cannot be read.
        """

    @abstractmethod
    def write_page(self, db: Session, page: UpstreamPage[Any]) -> UpsertResult:
        """
        Persist one page inside the caller's transaction.
        """


class CatalogIngestionStream(IngestionStream):
    key = SyncStreamKey.CATALOG

    def __init__(
        self,
        client: CommerceAPIClient,
        *,
        repository_factory: Callable[[Session], CatalogEntryRepository] = CatalogEntryRepository,
    ) -> None:
        self._client = client
        self._repository_factory = repository_factory

    def fetch_page(self, page: int) -> UpstreamPage[Any]:
        return self._client.fetch_catalog_page(page)

    def write_page(self, db: Session, page: UpstreamPage[Any]) -> UpsertResult:
        return self._repository_factory(db).upsert_entries(page.records)


class MembershipIngestionStream(IngestionStream):
    """
    Memberships also feed the catalog's active-user counts. Increments are
    additive, so each page must contribute exactly once; the cursor that
    commits with the page guarantees it.
    """

    key = SyncStreamKey.MEMBERSHIPS

    def __init__(
        self,
        client: CommerceAPIClient,
        *,
        membership_repository_factory: Callable[[Session], MembershipRepository] = MembershipRepository,
        catalog_repository_factory: Callable[[Session], CatalogEntryRepository] = CatalogEntryRepository,
    ) -> None:
        self._client = client
        self._membership_repository_factory = membership_repository_factory
        self._catalog_repository_factory = catalog_repository_factory

    def fetch_page(self, page: int) -> UpstreamPage[Any]:
        return self._client.fetch_membership_page(page)

    def write_page(self, db: Session, page: UpstreamPage[Any]) -> UpsertResult:
        result = self._membership_repository_factory(db).upsert_memberships(page.records)
        deltas = tally_catalog_references(page.records)
        if deltas:
            touched = self._catalog_repository_factory(db).increment_active_users(deltas)
            logger.debug(
                "Active-user increments page=%s catalog_ids=%s rows_updated=%s",
                page.page,
                len(deltas),
                touched,
            )
        return result


class IngestionService:
    """
    Drives streams through their sweeps against the local store.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        page_delay_seconds: float,
        cursor_repository_factory: Callable[[Session], SyncCursorRepository] = SyncCursorRepository,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._page_delay_seconds = max(0.0, page_delay_seconds)
        self._cursor_repository_factory = cursor_repository_factory
        self._sleep = sleep

    def run_all(self, streams: Sequence[IngestionStream]) -> list[SweepSummary]:
        """
        Sweep each stream in order. One stream's failure does not stop the
        ones after it.
        """

        summaries: list[SweepSummary] = []
        for stream in streams:
            try:
                summaries.append(self.run_stream(stream))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Unhandled failure sweeping stream=%s", stream.key)
                summaries.append(SweepSummary(stream=stream.key, start_page=0, error=str(exc)))
        return summaries

    def run_stream(self, stream: IngestionStream) -> SweepSummary:
        with self._session_factory() as db:
            cursors = self._cursor_repository_factory(db)
            with db.begin():
                cursor = cursors.get_cursor(stream.key)

            no_prior_cursor = cursor is None
            start_page = 1 if cursor is None else cursor + 1
            page = start_page
            pages_committed = 0
            last_committed_page: int | None = None
            records_written = 0
            failed_records = 0
            cursor_reset = False
            contended = False

            logger.info("Sync stream=%s starting at page %s", stream.key, start_page)
            try:
                while True:
                    fetched = stream.fetch_page(page)
                    failed_records += fetched.failed_records

                    if fetched.records:
                        with db.begin():
                            claimed = _claim(cursors, stream.key, expected=cursor)
                            if claimed:
                                result = stream.write_page(db, fetched)
                                cursors.set_cursor(stream.key, page)
                        if not claimed:
                            contended = True
                            break
                        cursor = page
                        pages_committed += 1
                        last_committed_page = page
                        records_written += result.written
                        failed_records += result.failed
                        logger.info(
                            "Sync stream=%s committed page %s/%s written=%s failed=%s",
                            stream.key,
                            page,
                            fetched.total_pages,
                            result.written,
                            result.failed,
                        )

                    page += 1
                    if page > fetched.total_pages:
                        break
                    self._sleep(self._page_delay_seconds)

                if no_prior_cursor and pages_committed == 0 and not contended:
                    with db.begin():
                        claimed = _claim(cursors, stream.key, expected=None)
                        if claimed:
                            cursors.set_cursor(stream.key, 0)
                    if claimed:
                        cursor_reset = True
                        logger.info("Sync stream=%s initialized empty; cursor set to 0", stream.key)
                    else:
                        contended = True

                if contended:
                    logger.info(
                        "Sync stream=%s stopped at page %s; another sweeper owns the stream",
                        stream.key,
                        page,
                    )
            except _SWEEP_ABORTING_ERRORS as exc:
                summary = SweepSummary(
                    stream=stream.key,
                    start_page=start_page,
                    pages_committed=pages_committed,
                    last_committed_page=last_committed_page,
                    records_written=records_written,
                    failed_records=failed_records,
                    error=f"page {page}: {exc}",
                )
                log_event(
                    logger,
                    logging.ERROR,
                    "sync_stream_failed",
                    stream=stream.key,
                    failed_page=page,
                    pages_committed=pages_committed,
                    error=str(exc),
                )
                return summary

        summary = SweepSummary(
            stream=stream.key,
            start_page=start_page,
            pages_committed=pages_committed,
            last_committed_page=last_committed_page,
            records_written=records_written,
            failed_records=failed_records,
            cursor_reset=cursor_reset,
            contended=contended,
        )
        log_event(
            logger,
            logging.INFO,
            "sync_stream_completed",
            stream=stream.key,
            start_page=start_page,
            pages_committed=pages_committed,
            records_written=records_written,
            failed_records=failed_records,
            cursor_reset=cursor_reset,
            contended=contended,
        )
        return summary


def _claim(cursors: SyncCursorRepository, stream_key: str, *, expected: int | None) -> bool:
    """
    Lock the stream for the current transaction and confirm its cursor still
    reads ``expected``.
    """

    return cursors.claim_stream(stream_key) and cursors.get_cursor(stream_key) == expected


def build_streams(client: CommerceAPIClient) -> list[IngestionStream]:
    """
    Streams in sweep order: catalog first so membership increments find
    their entries.
    """

    return [CatalogIngestionStream(client), MembershipIngestionStream(client)]
