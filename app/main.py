from __future__ import annotations

import logging
import os
import time
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator
from datetime import datetime, timezone

from fastapi import Depends, FastAPI

from app.logging_utils import configure_logging
from app.schemas.products import DatabaseHealthResponse, HealthResponse
from db.session import Database, get_database

logger = logging.getLogger(__name__)


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - No empty-string values are accepted.
    - Only PostgreSQL database URLs are permitted.
    - The upstream base URL and API token are always required.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    database_url = os.getenv("DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    configured_url = database_url or cloud_database_url or local_database_url
    if not configured_url:
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )
    elif not configured_url.startswith(("postgres://", "postgresql")):
        errors.append("The database URL must point at PostgreSQL.")

    # --- Upstream API ---------------------------------------------------
    if not os.getenv("UPSTREAM_BASE_URL", "").strip():
        errors.append("UPSTREAM_BASE_URL is not set.")
    if not os.getenv("UPSTREAM_API_TOKEN", "").strip():
        errors.append(
            "UPSTREAM_API_TOKEN is not set. Empty strings are not permitted."
        )

    if errors:
        raise RuntimeError(
            "Startup validation failed. Missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _check_schema(database: Database) -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401 registers all ORM models on Base.metadata
    from db.base import Base

    inspector = sa_inspect(database.engine)
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        logger.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Open the store, validate the schema and start the sync scheduler; tear down on exit."""
    from app.config import get_sync_settings
    from app.scheduler.jobs import build_scheduler
    from db.session import connect_with_retry

    database = connect_with_retry()
    application.state.database = database
    logger.info("Database connectivity confirmed")
    _check_schema(database)
    logger.info("Database schema validated")

    scheduler = None
    if get_sync_settings().enabled:
        scheduler = build_scheduler(database)
        scheduler.start()
        logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    else:
        logger.info("Upstream sync disabled; scheduler not started")

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=True)
            logger.info("Scheduler shut down")
        database.dispose()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    configure_logging()

    application = FastAPI(
        title="Commerce Sync API",
        version="1.0.0",
        lifespan=_lifespan,
    )
    application.state.started_monotonic = time.monotonic()

    from app.api.routers import products_router

    application.include_router(products_router)

    @application.get("/api/health", response_model=HealthResponse)
    def healthcheck(database: Database = Depends(get_database)) -> HealthResponse:
        status = database.connection_status()
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(tz=timezone.utc).isoformat(),
            database=DatabaseHealthResponse(healthy=status == "connected", status=status),
            uptime_seconds=round(time.monotonic() - application.state.started_monotonic, 3),
        )

    return application


app = create_app()
