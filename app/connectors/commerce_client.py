"""
app/connectors/commerce_client.py

Commerce provider API client: paginated product and membership reads and
per-recipient direct message sends.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar
from urllib.parse import quote

import requests

from app.config import ExternalHTTPSettings, UpstreamSettings
from app.connectors.base import BaseConnector, UpstreamStatusError, UpstreamTransportError
from app.domain.commerce import CatalogEntryInput, MembershipInput, SendResult, UpstreamPage

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")


class CommerceAPIClient(BaseConnector):
    """
    Bearer-token client for the commerce provider.
    """

    def __init__(
        self,
        *,
        settings: UpstreamSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="commerce_api", http_settings=http_settings, session=session)
        self._settings = settings

    def fetch_catalog_page(self, page: int) -> UpstreamPage[CatalogEntryInput]:
        return self._fetch_page(self._settings.products_path, page, self._normalize_product)

    def fetch_membership_page(self, page: int) -> UpstreamPage[MembershipInput]:
        return self._fetch_page(self._settings.memberships_path, page, self._normalize_membership)

    def send_message(self, user_id: str, body: str) -> SendResult:
        """
        Send one direct message.

        Recipient-level rejections come back as ``SendResult(success=False)``;
        transport failures raise UpstreamTransportError.
        """

        path = self._settings.message_path.replace("{user_id}", quote(user_id, safe=""))
        try:
            payload = self._request_json(
                method="POST",
                url=self._url(path),
                headers=self._headers(),
                json_body={"message": body},
            )
        except UpstreamStatusError as exc:
            reason = exc.detail or f"HTTP {exc.status_code}"
            return SendResult(success=False, error=reason)

        if isinstance(payload, dict) and payload.get("success") is False:
            return SendResult(success=False, error=str(payload.get("error") or "Upstream rejected message"))
        return SendResult(success=True)

    def _fetch_page(
        self,
        path: str,
        page: int,
        normalize: Callable[[Any], RecordT | None],
    ) -> UpstreamPage[RecordT]:
        payload = self._request_json(
            method="GET",
            url=self._url(path),
            params={"page": page, "per": self._settings.page_size},
            headers=self._headers(),
        )
        if not isinstance(payload, dict):
            raise UpstreamTransportError(f"{self.source}: unexpected payload shape for {path} page {page}.")

        rows = payload.get("data") or []
        if not isinstance(rows, list):
            raise UpstreamTransportError(f"{self.source}: 'data' is not a list for {path} page {page}.")

        records: list[RecordT] = []
        failed_records = 0
        for index, row in enumerate(rows):
            normalized = normalize(row)
            if normalized is None:
                failed_records += 1
                logger.warning(
                    "Skipping unmappable upstream record path=%s page=%s index=%s",
                    path,
                    page,
                    index,
                )
                continue
            records.append(normalized)

        return UpstreamPage(
            page=page,
            total_pages=parse_total_pages(payload),
            records=records,
            failed_records=failed_records,
        )

    def _url(self, path: str) -> str:
        return f"{self._settings.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_token or ''}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _normalize_product(row: Any) -> CatalogEntryInput | None:
        if not isinstance(row, dict):
            return None
        external_id = _clean_str(row.get("id"))
        if external_id is None:
            return None

        return CatalogEntryInput(
            external_id=external_id,
            title=_clean_str(row.get("title")) or _clean_str(row.get("name")),
            visibility=(
                _clean_str(row.get("visibility"))
                or _clean_str(row.get("status"))
                or _clean_str(row.get("marketplaceStatus"))
            ),
            active_users_seed=_non_negative_int(row.get("activeUsersCount")),
        )

    @staticmethod
    def _normalize_membership(row: Any) -> MembershipInput | None:
        if not isinstance(row, dict):
            return None
        external_id = _clean_str(row.get("id"))
        if external_id is None:
            return None

        return MembershipInput(
            external_id=external_id,
            user_id=_reference_id(row.get("user")),
            catalog_entry_id=_reference_id(row.get("product")),
            email=_clean_str(row.get("email")),
        )


def parse_total_pages(payload: dict[str, Any]) -> int:
    """
    Read ``pagination.total_page`` with a top-level ``total_page`` fallback.
    Missing, zero or invalid counts read as 1.
    """

    pagination = payload.get("pagination")
    candidates = [
        pagination.get("total_page") if isinstance(pagination, dict) else None,
        payload.get("total_page"),
    ]
    for candidate in candidates:
        try:
            value = int(candidate)
        except (TypeError, ValueError):
            continue
        if value > 0:
            return value
    return 1


def _clean_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _non_negative_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _reference_id(value: Any) -> str | None:
    """Accept either a bare id or an expanded ``{"id": ...}`` object."""
    if isinstance(value, dict):
        return _clean_str(value.get("id"))
    return _clean_str(value)
