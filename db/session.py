"""
db/session.py

Database handle: engine, session factory and reachability checks.

The handle is created once by process bootstrap (API lifespan or the
standalone updater) and passed to everything that touches the store.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Generator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from db.config import DatabaseConnectSettings, get_connect_settings, resolve_database_url

logger = logging.getLogger(__name__)


class DatabaseUnavailableError(RuntimeError):
    """Raised when the store cannot be reached after all connect attempts."""


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def create_db_engine(database_url: str | None = None) -> Engine:
    url = database_url or resolve_database_url()
    if not url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    return create_engine(
        url,
        echo=_get_bool_env("SQL_ECHO", default=False),
        pool_pre_ping=True,
        pool_recycle=_get_int_env("DB_POOL_RECYCLE", 1800),
        pool_size=_get_int_env("DB_POOL_SIZE", 10),
        max_overflow=_get_int_env("DB_MAX_OVERFLOW", 10),
        connect_args={"connect_timeout": _get_int_env("DB_CONNECT_TIMEOUT_SECONDS", 10)},
    )


class Database:
    """
    Explicit connection handle for the local store.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self.session_factory: sessionmaker[Session] = sessionmaker(
            bind=engine,
            class_=Session,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

    def session(self) -> Session:
        return self.session_factory()

    def is_reachable(self) -> bool:
        """Run ``SELECT 1``; any database error means unreachable."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database health check failed: %s", exc)
            return False
        return True

    def connection_status(self) -> str:
        return "connected" if self.is_reachable() else "disconnected"

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Database connection pool disposed")


def connect_with_retry(
    *,
    engine_factory: Callable[[], Engine] = create_db_engine,
    settings: DatabaseConnectSettings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Database:
    """
    Open the store with a bounded number of attempts and exponential backoff.

    Raises DatabaseUnavailableError once ``settings.max_attempts`` is spent.
    """

    policy = settings or get_connect_settings()
    last_error: Exception | None = None

    for attempt in range(1, policy.max_attempts + 1):
        engine: Engine | None = None
        try:
            engine = engine_factory()
            with engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            logger.info("Connected to database on attempt %s/%s", attempt, policy.max_attempts)
            return Database(engine)
        except SQLAlchemyError as exc:
            last_error = exc
            if engine is not None:
                engine.dispose()
            logger.error(
                "Database connection failed attempt=%s/%s error=%s",
                attempt,
                policy.max_attempts,
                exc,
            )

        if attempt >= policy.max_attempts:
            break

        backoff_seconds = policy.backoff_initial_seconds * (policy.backoff_multiplier ** (attempt - 1))
        logger.warning("Retrying database connection in %.2f seconds", backoff_seconds)
        sleep(backoff_seconds)

    raise DatabaseUnavailableError(
        f"Failed to connect to database after {policy.max_attempts} attempts: {last_error}"
    ) from last_error


def get_database(request: Request) -> Database:
    """FastAPI dependency returning the handle opened during lifespan startup."""
    return request.app.state.database


def get_db(request: Request) -> Generator[Session, None, None]:
    db = get_database(request).session()
    try:
        yield db
    finally:
        db.close()
