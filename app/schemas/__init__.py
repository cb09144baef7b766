"""
app/schemas package marker.
"""

from app.schemas.products import (
    DatabaseHealthResponse,
    DispatchRequest,
    DispatchResponse,
    HealthResponse,
    MembershipResponse,
    PaginationResponse,
    ProductDetailResponse,
    ProductListResponse,
    ProductResponse,
)

__all__ = [
    "DatabaseHealthResponse",
    "DispatchRequest",
    "DispatchResponse",
    "HealthResponse",
    "MembershipResponse",
    "PaginationResponse",
    "ProductDetailResponse",
    "ProductListResponse",
    "ProductResponse",
]
