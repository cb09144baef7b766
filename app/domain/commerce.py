"""
app/domain/commerce.py

Domain models exchanged between the upstream client, repositories and the
ingestion/dispatch services.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

RecordT = TypeVar("RecordT")


@dataclass(frozen=True)
class CatalogEntryInput:
    """
    One upstream product normalized for persistence.
    """

    external_id: str
    title: str | None = None
    visibility: str | None = None
    active_users_seed: int = 0


@dataclass(frozen=True)
class MembershipInput:
    """
    One upstream membership normalized for persistence.
    """

    external_id: str
    user_id: str | None = None
    catalog_entry_id: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class UpstreamPage(Generic[RecordT]):
    """
    One fetched page. ``failed_records`` counts rows that could not be
    mapped to a storage key and were dropped.
    """

    page: int
    total_pages: int
    records: Sequence[RecordT]
    failed_records: int = 0


@dataclass(frozen=True)
class SendResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class UpsertResult:
    written: int
    failed: int = 0


@dataclass(frozen=True)
class SweepSummary:
    """
    Outcome of one stream's sweep.
    """

    stream: str
    start_page: int
    pages_committed: int = 0
    last_committed_page: int | None = None
    records_written: int = 0
    failed_records: int = 0
    cursor_reset: bool = False
    contended: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class DispatchOutcome:
    """
    Accumulated result of one bulk message dispatch. Not persisted.
    """

    total_recipients: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[str] = field(default_factory=list)
    note: str | None = None
    aborted: bool = False

    @property
    def total_processed(self) -> int:
        return self.success_count + self.error_count

    def record_success(self) -> None:
        self.success_count += 1

    def record_failure(self, description: str) -> None:
        self.error_count += 1
        self.errors.append(description)
