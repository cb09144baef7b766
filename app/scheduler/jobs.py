"""
app/scheduler/jobs.py

APScheduler wiring for the periodic upstream sync.

Schedule
--------
  upstream_sync: once at start, then every ``SYNC_INTERVAL_MS``
                 (``UPDATE_INTERVAL_MS`` honoured as a fallback; default 60 s)

A sweep runs the catalog stream, then the membership stream. At most one
sweep is in flight per process: the job is registered with
``max_instances=1`` and ``coalesce=True``, and ``SingleFlightRunner`` skips
any tick that still finds a sweep running.
Sweepers in separate processes (the API and the standalone updater) are
kept apart per page by the ingestion service's stream claim.

Lifecycle
---------
Call ``build_scheduler(database)`` once to get a configured scheduler. The
API starts a ``BackgroundScheduler`` from its lifespan; the standalone
updater (``scripts/run_updater.py``) runs a ``BlockingScheduler``.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from app.config import SyncSettings, get_external_http_settings, get_sync_settings, get_upstream_settings
from app.connectors.commerce_client import CommerceAPIClient
from app.domain.commerce import SweepSummary
from app.services.ingestion_service import IngestionService, build_streams
from db.session import Database

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "upstream_sync"

SchedulerT = TypeVar("SchedulerT", bound=BaseScheduler)


# ---------------------------------------------------------------------------
# Single-flight guard
# ---------------------------------------------------------------------------


class SingleFlightRunner:
    """
    Run a job only when no previous run of it is still in progress.

    A tick that finds the lock held is skipped and logged, never queued.
    Every exception from the job is logged and swallowed so the scheduler
    keeps ticking.
    """

    def __init__(self, job: Callable[[], Any], *, name: str) -> None:
        self._job = job
        self._name = name
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def __call__(self) -> bool:
        """Return True when the job ran (successfully or not), False when skipped."""
        if not self._lock.acquire(blocking=False):
            logger.info("Scheduler: %s skipped; previous run still in progress", self._name)
            return False
        try:
            self._job()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Scheduler: %s failed: %s", self._name, exc)
        finally:
            self._lock.release()
        return True


# ---------------------------------------------------------------------------
# Job: upstream sync sweep
# ---------------------------------------------------------------------------


def run_sync_sweep(database: Database, *, settings: SyncSettings | None = None) -> list[SweepSummary]:
    """
    One full sweep over every stream. Each stream's failure is contained in
    its own summary.
    """

    sync_settings = settings or get_sync_settings()
    logger.info("Scheduler: upstream_sync starting")
    client = CommerceAPIClient(
        settings=get_upstream_settings(),
        http_settings=get_external_http_settings(),
    )
    try:
        service = IngestionService(
            session_factory=database.session,
            page_delay_seconds=sync_settings.page_delay_seconds,
        )
        summaries = service.run_all(build_streams(client))
    finally:
        client.close()

    failed = [summary.stream for summary in summaries if not summary.succeeded]
    if failed:
        logger.warning("Scheduler: upstream_sync complete with failed streams=%s", failed)
    else:
        logger.info("Scheduler: upstream_sync complete")
    return summaries


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler(
    database: Database,
    *,
    scheduler_cls: type[SchedulerT] = BackgroundScheduler,
    settings: SyncSettings | None = None,
    job: Callable[[], Any] | None = None,
) -> SchedulerT:
    """
    Build a scheduler with the sync job registered.

    Returns a configured but *not yet started* scheduler. The caller must
    call ``.start()`` and ``.shutdown(wait=True)`` at the appropriate
    lifecycle points.
    """

    sync_settings = settings or get_sync_settings()
    sweep = job or (lambda: run_sync_sweep(database, settings=sync_settings))
    scheduler = scheduler_cls(timezone="UTC")

    scheduler.add_job(
        SingleFlightRunner(sweep, name=SYNC_JOB_ID),
        trigger="interval",
        seconds=sync_settings.interval_seconds,
        next_run_time=datetime.now(tz=timezone.utc),
        id=SYNC_JOB_ID,
        name="Upstream catalog and membership sync",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        "Scheduler: registered %s every %.1f seconds",
        SYNC_JOB_ID,
        sync_settings.interval_seconds,
    )
    return scheduler
