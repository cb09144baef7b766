"""
app/domain package marker.
"""

from app.domain.commerce import (
    CatalogEntryInput,
    DispatchOutcome,
    MembershipInput,
    SendResult,
    SweepSummary,
    UpsertResult,
    UpstreamPage,
)

__all__ = [
    "CatalogEntryInput",
    "DispatchOutcome",
    "MembershipInput",
    "SendResult",
    "SweepSummary",
    "UpsertResult",
    "UpstreamPage",
]
