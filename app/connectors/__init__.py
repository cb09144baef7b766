"""
app/connectors package marker.
"""

from app.connectors.base import (
    BaseConnector,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTransportError,
)
from app.connectors.commerce_client import CommerceAPIClient

__all__ = [
    "BaseConnector",
    "CommerceAPIClient",
    "UpstreamError",
    "UpstreamStatusError",
    "UpstreamTransportError",
]
