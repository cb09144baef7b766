"""
app/schemas/products.py

Request and response schemas for the catalog and dispatch endpoints.

Fields serialize in camelCase to match the upstream provider's dashboard
conventions.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PaginationResponse(_CamelModel):
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)
    total: int = Field(..., ge=0)
    pages: int = Field(..., ge=0)


class ProductResponse(_CamelModel):
    id: str
    title: str | None = None
    visibility: str | None = None
    active_users: int = Field(0, ge=0)


class MembershipResponse(_CamelModel):
    id: str
    user: str | None = None
    email: str | None = None


class ProductListResponse(_CamelModel):
    """
    ``active_users`` on each product is the incrementally maintained
    counter; ``active_by_product`` is counted from membership rows.
    """

    products: list[ProductResponse] = Field(default_factory=list)
    active_by_product: dict[str, int] = Field(default_factory=dict)
    pagination: PaginationResponse


class ProductDetailResponse(_CamelModel):
    product: ProductResponse | None = None
    memberships: list[MembershipResponse] = Field(default_factory=list)
    pagination: PaginationResponse


class DispatchRequest(_CamelModel):
    message: str = ""


class DispatchResponse(_CamelModel):
    success: bool
    success_count: int = Field(..., ge=0)
    error_count: int = Field(..., ge=0)
    errors: list[str] = Field(default_factory=list)
    total_processed: int = Field(..., ge=0)
    message: str | None = None


class DatabaseHealthResponse(_CamelModel):
    healthy: bool
    status: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    database: DatabaseHealthResponse
    uptime_seconds: float = Field(..., ge=0)
