"""
app/api/dependencies.py

Shared FastAPI dependencies for store access and services.
"""

from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, HTTPException, status

from app.services.dispatch_service import MessageDispatchService, build_dispatch_service
from db.session import Database, get_database


def require_available_database(database: Database = Depends(get_database)) -> Database:
    """
    Reject the request with 503 when the store does not answer ``SELECT 1``.
    """

    if not database.is_reachable():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        )
    return database


@lru_cache(maxsize=1)
def get_dispatch_service() -> MessageDispatchService:
    """
    Return a cached dispatch service instance.
    """

    return build_dispatch_service()
