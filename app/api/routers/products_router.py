"""
app/api/routers/products_router.py

Catalog browsing and bulk member messaging endpoints.
"""

from __future__ import annotations

import logging
import math

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_dispatch_service, require_available_database
from app.schemas.products import (
    DispatchRequest,
    DispatchResponse,
    MembershipResponse,
    PaginationResponse,
    ProductDetailResponse,
    ProductListResponse,
    ProductResponse,
)
from app.services.dispatch_service import DispatchValidationError, MessageDispatchService
from db.models.catalog_entry import CatalogEntry
from db.repositories.catalog_repository import CatalogEntryRepository
from db.repositories.membership_repository import MembershipRepository
from db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 500


def _pagination(page: int, limit: int, total: int) -> PaginationResponse:
    return PaginationResponse(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


def _product_response(entry: CatalogEntry) -> ProductResponse:
    return ProductResponse(
        id=entry.external_id,
        title=entry.title,
        visibility=entry.visibility,
        active_users=entry.active_users or 0,
    )


@router.get(
    "",
    response_model=ProductListResponse,
    dependencies=[Depends(require_available_database)],
)
def list_products(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
) -> ProductListResponse:
    """
    List catalog entries with their cached active-user counters and the
    membership-derived count for each listed entry.
    """

    catalog = CatalogEntryRepository(db)
    entries = catalog.list_entries(offset=(page - 1) * limit, limit=limit)
    active_by_product = MembershipRepository(db).count_by_catalog_entries(
        [entry.external_id for entry in entries]
    )

    return ProductListResponse(
        products=[_product_response(entry) for entry in entries],
        active_by_product=dict(active_by_product),
        pagination=_pagination(page, limit, catalog.count_entries()),
    )


@router.get(
    "/{product_id}",
    response_model=ProductDetailResponse,
    dependencies=[Depends(require_available_database)],
)
def get_product(
    product_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    db: Session = Depends(get_db),
) -> ProductDetailResponse:
    """
    One catalog entry (null when unknown) plus a page of its memberships.
    """

    entry = CatalogEntryRepository(db).get_by_external_id(product_id)
    memberships = MembershipRepository(db)
    rows = memberships.list_for_catalog_entry(product_id, offset=(page - 1) * limit, limit=limit)

    return ProductDetailResponse(
        product=_product_response(entry) if entry is not None else None,
        memberships=[
            MembershipResponse(id=row.external_id, user=row.user_id, email=row.email) for row in rows
        ],
        pagination=_pagination(page, limit, memberships.count_for_catalog_entry(product_id)),
    )


@router.post("/{product_id}/message", response_model=DispatchResponse)
def send_product_message(
    product_id: str,
    body: DispatchRequest,
    db: Session = Depends(get_db),
    dispatch_service: MessageDispatchService = Depends(get_dispatch_service),
) -> DispatchResponse:
    """
    Send one direct message to every member of the catalog entry.

    Per-recipient failures are reported in ``errors`` and never fail the
    request.
    """

    try:
        outcome = dispatch_service.dispatch(db, product_id, body.message)
    except DispatchValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    logger.info(
        "Dispatch finished product_id=%s success=%s errors=%s",
        product_id,
        outcome.success_count,
        outcome.error_count,
    )
    return DispatchResponse(
        success=not outcome.aborted,
        success_count=outcome.success_count,
        error_count=outcome.error_count,
        errors=outcome.errors,
        total_processed=outcome.total_processed,
        message=outcome.note,
    )
