"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for upstream calls.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class UpstreamSettings:
    """
    Commerce provider API location and credentials.

    ``message_path`` is a template; ``{user_id}`` is replaced with the
    recipient's upstream user id.
    """

    base_url: str = ""
    api_token: str | None = None
    products_path: str = "/api/v2/products"
    memberships_path: str = "/api/v2/memberships"
    message_path: str = "/api/v2/users/{user_id}/messages"
    page_size: int = 50


@dataclass(frozen=True)
class SyncSettings:
    """
    Periodic ingestion settings.
    """

    enabled: bool = True
    interval_seconds: float = 60.0
    page_delay_seconds: float = 0.2


@dataclass(frozen=True)
class DispatchSettings:
    """
    Bulk message dispatch settings.
    """

    chunk_size: int = 100
    chunk_delay_seconds: float = 1.0


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared upstream HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_upstream_settings() -> UpstreamSettings:
    """
    Return commerce API settings from environment variables.
    """

    return UpstreamSettings(
        base_url=_get_str_env("UPSTREAM_BASE_URL", ""),
        api_token=_get_optional_str_env("UPSTREAM_API_TOKEN"),
        products_path=_get_str_env("UPSTREAM_PRODUCTS_PATH", "/api/v2/products"),
        memberships_path=_get_str_env("UPSTREAM_MEMBERSHIPS_PATH", "/api/v2/memberships"),
        message_path=_get_str_env("UPSTREAM_MESSAGE_PATH", "/api/v2/users/{user_id}/messages"),
        page_size=max(1, _get_int_env("UPSTREAM_PAGE_SIZE", 50)),
    )


@lru_cache(maxsize=1)
def get_sync_settings() -> SyncSettings:
    """
    Return ingestion scheduling settings.

    ``SYNC_INTERVAL_MS`` wins over the legacy ``UPDATE_INTERVAL_MS``.
    """

    interval_ms = _get_int_env("SYNC_INTERVAL_MS", _get_int_env("UPDATE_INTERVAL_MS", 60_000))
    return SyncSettings(
        enabled=_get_bool_env("SYNC_ENABLED", True),
        interval_seconds=max(1.0, interval_ms / 1000.0),
        page_delay_seconds=max(0.0, _get_int_env("SYNC_PAGE_DELAY_MS", 200) / 1000.0),
    )


@lru_cache(maxsize=1)
def get_dispatch_settings() -> DispatchSettings:
    """
    Return message dispatch settings.
    """

    return DispatchSettings(
        chunk_size=max(1, _get_int_env("DISPATCH_CHUNK_SIZE", 100)),
        chunk_delay_seconds=max(0.0, _get_int_env("DISPATCH_CHUNK_DELAY_MS", 1000) / 1000.0),
    )
