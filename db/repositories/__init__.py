"""
Repository layer exports.
"""

from db.repositories.catalog_repository import CatalogEntryRepository
from db.repositories.errors import PersistenceError, RepositoryError
from db.repositories.membership_repository import MembershipRepository, tally_catalog_references
from db.repositories.sync_cursor_repository import SyncCursorRepository

__all__ = [
    "CatalogEntryRepository",
    "MembershipRepository",
    "PersistenceError",
    "RepositoryError",
    "SyncCursorRepository",
    "tally_catalog_references",
]
