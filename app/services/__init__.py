"""
app/services package marker.
"""

from app.services.dispatch_service import (
    DispatchValidationError,
    MessageDispatchService,
    build_dispatch_service,
)
from app.services.ingestion_service import (
    CatalogIngestionStream,
    IngestionService,
    IngestionStream,
    MembershipIngestionStream,
    build_streams,
)

__all__ = [
    "CatalogIngestionStream",
    "DispatchValidationError",
    "IngestionService",
    "IngestionStream",
    "MembershipIngestionStream",
    "MessageDispatchService",
    "build_dispatch_service",
    "build_streams",
]
