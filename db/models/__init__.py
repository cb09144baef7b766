"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.catalog_entry import CatalogEntry
from db.models.membership import Membership
from db.models.sync_cursor import SyncCursor, SyncStreamKey

__all__ = [
    "CatalogEntry",
    "Membership",
    "SyncCursor",
    "SyncStreamKey",
]
