"""Generic repository over the canonical tree.

Re-export the repository and its errors for convenient imports in services and tests.
"""

from .errors import LegacyShapeError, NotFoundError, RepositoryError, ValidationError
from .generic import Collection, TreeRepository

__all__ = [
    "Collection",
    "LegacyShapeError",
    "NotFoundError",
    "RepositoryError",
    "TreeRepository",
    "ValidationError",
]
