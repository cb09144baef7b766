"""
app/services/dispatch_service.py

Bulk direct-message fan-out to every member of one catalog entry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_dispatch_settings, get_external_http_settings, get_upstream_settings
from app.connectors.base import UpstreamTransportError
from app.connectors.commerce_client import CommerceAPIClient
from app.domain.commerce import DispatchOutcome
from app.logging_utils import log_event
from db.models.membership import Membership
from db.repositories.errors import PersistenceError
from db.repositories.membership_repository import MembershipRepository

logger = logging.getLogger(__name__)

NO_RECIPIENTS_NOTE = "No memberships found for this product"


class DispatchValidationError(ValueError):
    """
    Raised when a dispatch request is rejected before any work starts.
    """


class MessageDispatchService:
    """
    Sends one message to each member of a catalog entry, chunk by chunk.

    Recipients within a chunk are sent sequentially; a fixed delay separates
    consecutive chunks. A failure for one recipient is recorded in the
    outcome and never stops its siblings.
    """

    def __init__(
        self,
        client: CommerceAPIClient,
        *,
        chunk_size: int,
        chunk_delay_seconds: float,
        repository_factory: Callable[[Session], MembershipRepository] = MembershipRepository,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._chunk_size = max(1, chunk_size)
        self._chunk_delay_seconds = max(0.0, chunk_delay_seconds)
        self._repository_factory = repository_factory
        self._sleep = sleep

    def dispatch(self, db: Session, catalog_entry_id: str, message: str) -> DispatchOutcome:
        if not message or not message.strip():
            raise DispatchValidationError("Message is required")

        repository = self._repository_factory(db)
        outcome = DispatchOutcome()
        try:
            outcome.total_recipients = repository.count_for_catalog_entry(catalog_entry_id)
            if outcome.total_recipients == 0:
                outcome.note = NO_RECIPIENTS_NOTE
                logger.info("Dispatch skipped catalog_entry_id=%s: no recipients", catalog_entry_id)
                return outcome

            chunks = repository.iter_recipient_chunks(catalog_entry_id, chunk_size=self._chunk_size)
            for chunk_index, chunk in enumerate(chunks):
                if chunk_index > 0:
                    self._sleep(self._chunk_delay_seconds)
                for recipient in chunk:
                    self._send_one(recipient, message, outcome)
                logger.info(
                    "Dispatch progress catalog_entry_id=%s chunk=%s processed=%s/%s",
                    catalog_entry_id,
                    chunk_index + 1,
                    outcome.total_processed,
                    outcome.total_recipients,
                )
        except (PersistenceError, SQLAlchemyError) as exc:
            outcome.aborted = True
            outcome.errors.append(f"Recipient lookup failed: {exc}")
            logger.error("Dispatch aborted catalog_entry_id=%s: %s", catalog_entry_id, exc)

        log_event(
            logger,
            logging.INFO,
            "dispatch_completed",
            catalog_entry_id=catalog_entry_id,
            total_recipients=outcome.total_recipients,
            success_count=outcome.success_count,
            error_count=outcome.error_count,
            aborted=outcome.aborted,
        )
        return outcome

    def _send_one(self, recipient: Membership, message: str, outcome: DispatchOutcome) -> None:
        membership_ref = recipient.external_id
        if not recipient.user_id:
            outcome.record_failure(f"Membership {membership_ref}: No user ID")
            return

        try:
            result = self._client.send_message(recipient.user_id, message)
        except UpstreamTransportError as exc:
            outcome.record_failure(f"Membership {membership_ref}: {exc}")
            return

        if result.success:
            outcome.record_success()
        else:
            outcome.record_failure(f"Membership {membership_ref}: {result.error or 'Send failed'}")


def build_dispatch_service() -> MessageDispatchService:
    settings = get_dispatch_settings()
    client = CommerceAPIClient(
        settings=get_upstream_settings(),
        http_settings=get_external_http_settings(),
    )
    return MessageDispatchService(
        client,
        chunk_size=settings.chunk_size,
        chunk_delay_seconds=settings.chunk_delay_seconds,
    )
