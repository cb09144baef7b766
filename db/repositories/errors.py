"""
Repository-layer exceptions for the mirrored commerce store.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for repository failures."""


class PersistenceError(RepositoryError):
    """Raised when the store is unreachable or rejects a whole write."""
