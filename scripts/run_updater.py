"""
Run the upstream sync as a standalone process.

By default the sync runs on a blocking scheduler until interrupted. Use
``--once`` to run a single sweep and print its summaries.
"""

from __future__ import annotations

import argparse
import json
import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from app.logging_utils import configure_logging
from app.scheduler.jobs import build_scheduler, run_sync_sweep
from db.session import DatabaseUnavailableError, connect_with_retry

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Sync upstream catalog and memberships.")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one sweep over every stream and exit.",
    )
    args = parser.parse_args()

    configure_logging()
    try:
        database = connect_with_retry()
    except DatabaseUnavailableError as exc:
        logger.critical("Updater cannot start: %s", exc)
        return 1

    try:
        if args.once:
            summaries = run_sync_sweep(database)
            payload = [
                {
                    "stream": summary.stream,
                    "start_page": summary.start_page,
                    "pages_committed": summary.pages_committed,
                    "records_written": summary.records_written,
                    "failed_records": summary.failed_records,
                    "cursor_reset": summary.cursor_reset,
                    "error": summary.error,
                }
                for summary in summaries
            ]
            print(json.dumps(payload, indent=2))
            return 0 if all(summary.succeeded for summary in summaries) else 1

        scheduler = build_scheduler(database, scheduler_cls=BlockingScheduler)
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Updater interrupted; shutting down")
        return 0
    finally:
        database.dispose()


if __name__ == "__main__":
    raise SystemExit(main())
