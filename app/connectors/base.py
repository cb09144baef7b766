"""
app/connectors/base.py

Shared HTTP mechanics for upstream API clients.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests

from app.config import ExternalHTTPSettings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class UpstreamError(RuntimeError):
    """
    Base class for upstream API failures.
    """


class UpstreamTransportError(UpstreamError):
    """
    Raised on timeouts, connection failures, exhausted retries and
    unexpected response bodies.
    """


class UpstreamStatusError(UpstreamTransportError):
    """
    Raised when the upstream answers with a non-retryable HTTP status.
    """

    def __init__(self, message: str, *, status_code: int | None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class BaseConnector:
    """
    Retrying, rate-limited JSON-over-HTTP client.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_retries = http_settings.max_retries
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._min_request_interval_seconds = (
            1.0 / http_settings.rate_limit_per_second if http_settings.rate_limit_per_second > 0 else 0.0
        )
        self._last_request_monotonic: float = 0.0
        self._rate_limit_lock = threading.Lock()

    def close(self) -> None:
        self._session.close()

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> Any:
        """
        Execute an HTTP request and return parsed JSON with retry support.

        An empty body parses to ``None``.
        """

        response = self._request(
            method=method,
            url=url,
            params=params,
            headers=headers,
            json_body=json_body,
        )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamTransportError(f"{self.source}: response was not valid JSON.") from exc

    def _request(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        """
        Execute an HTTP request with rate limiting and exponential backoff.
        """

        last_error: Exception | None = None
        for attempt in range(self._max_retries + 1):
            self._apply_rate_limit()
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    json=json_body,
                    timeout=self._timeout_seconds,
                )
                if response.status_code in RETRYABLE_STATUS_CODES:
                    raise requests.HTTPError(
                        f"Retryable HTTP status code: {response.status_code}",
                        response=response,
                    )
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                last_error = exc
                status_code = exc.response.status_code if exc.response is not None else None
                is_retryable = status_code in RETRYABLE_STATUS_CODES
                if not is_retryable:
                    logger.error(
                        "Upstream request failed source=%s status=%s method=%s url=%s error=%s",
                        self.source,
                        status_code,
                        method,
                        url,
                        exc,
                    )
                    raise UpstreamStatusError(
                        f"{self.source}: HTTP {status_code} from {method} {url}",
                        status_code=status_code,
                        detail=_error_detail(exc.response),
                    ) from exc
            except (requests.Timeout, requests.ConnectionError) as exc:
                last_error = exc
            except requests.RequestException as exc:
                raise UpstreamTransportError(f"{self.source}: request could not be sent: {exc}") from exc

            if attempt >= self._max_retries:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Upstream request retry source=%s attempt=%s/%s wait_seconds=%.2f url=%s",
                self.source,
                attempt + 1,
                self._max_retries,
                backoff_seconds,
                url,
            )
            time.sleep(backoff_seconds)

        logger.error(
            "Upstream request exhausted retries source=%s url=%s error=%s",
            self.source,
            url,
            last_error,
        )
        raise UpstreamTransportError(f"{self.source}: request failed after retries.") from last_error

    def _apply_rate_limit(self) -> None:
        """
        Enforce minimum interval between outbound requests.

        Threads sharing one client queue on the lock, so the interval holds
        across concurrent callers.
        """

        if self._min_request_interval_seconds <= 0:
            return

        with self._rate_limit_lock:
            elapsed = time.monotonic() - self._last_request_monotonic
            remaining = self._min_request_interval_seconds - elapsed
            if remaining > 0:
                time.sleep(remaining)
            self._last_request_monotonic = time.monotonic()


def _error_detail(response: requests.Response | None) -> str | None:
    """
    Best-effort human-readable error text from an upstream error body.
    """

    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:300] or None

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            error = error.get("message")
        message = error or payload.get("message")
        if message:
            return str(message)
    return None
