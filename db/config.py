"""
db/config.py

Where the commerce store lives and how hard to try reaching it.

Store URL precedence
--------------------
  1. DATABASE_URL
  2. CLOUD_DATABASE_URL, only when ENVIRONMENT is prod/production/staging/cloud
  3. LOCAL_DATABASE_URL

``postgres://`` and ``postgresql://`` URLs are rewritten to the psycopg 3
driver. Values from ``.env`` and ``.env.local`` at the project root fill in
variables the process environment leaves unset. The API, the standalone
updater and alembic all resolve the store through ``resolve_database_url``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_ENV_FILES = (".env", ".env.local")
_CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_PSYCOPG_SCHEME = "postgresql+psycopg://"


def load_env_files() -> None:
    """
    Fill unset variables from KEY=VALUE lines in the project's env files.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in _ENV_FILES:
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            if key and key not in os.environ:
                os.environ[key] = value.strip().strip('"').strip("'")


def normalize_postgres_url(url: str) -> str:
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return _PSYCOPG_SCHEME + url[len(scheme):]
    return url


def resolve_database_url() -> str:
    """
    Resolve the commerce store URL in the precedence documented above.
    """

    load_env_files()

    candidates = [os.getenv("DATABASE_URL")]
    if os.getenv("ENVIRONMENT", "local").strip().lower() in _CLOUD_ENVIRONMENTS:
        candidates.append(os.getenv("CLOUD_DATABASE_URL"))
    candidates.append(os.getenv("LOCAL_DATABASE_URL"))

    for url in candidates:
        if url:
            return normalize_postgres_url(url)

    raise RuntimeError(
        "Commerce store URL is not configured. Set DATABASE_URL, or "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL with ENVIRONMENT."
    )


@dataclass(frozen=True)
class DatabaseConnectSettings:
    """
    Bounded retry policy for the initial store connection.
    """

    max_attempts: int = 5
    backoff_initial_seconds: float = 2.0
    backoff_multiplier: float = 2.0


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_connect_settings() -> DatabaseConnectSettings:
    load_env_files()
    return DatabaseConnectSettings(
        max_attempts=max(1, int(_env_number("DB_CONNECT_MAX_ATTEMPTS", 5))),
        backoff_initial_seconds=max(0.0, _env_number("DB_CONNECT_BACKOFF_SECONDS", 2.0)),
        backoff_multiplier=max(1.0, _env_number("DB_CONNECT_BACKOFF_MULTIPLIER", 2.0)),
    )
