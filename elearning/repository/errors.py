"""Repository and engine error types."""
from __future__ import annotations

from typing import Any, Iterable, List


class RepositoryError(Exception):
    """Base class for data-layer errors."""


class ValidationError(RepositoryError, ValueError):
    """A standardized record failed validation; carries every violation."""

    def __init__(self, kind: str, errors: Iterable[str]) -> None:
        self.kind = kind
        self.errors: List[str] = list(errors)
        super().__init__(f"invalid {kind}: {', '.join(self.errors)}")


class NotFoundError(RepositoryError, LookupError):
    """The addressed record does not exist."""

    def __init__(self, path: str, record_id: str) -> None:
        self.path = path
        self.record_id = record_id
        super().__init__(f"{record_id} not found at {path}")


class LegacyShapeError(RepositoryError, ValueError):
    """A legacy value cannot be coerced into any recognized record shape."""

    def __init__(self, path: str, value: Any, reason: str) -> None:
        self.path = path
        self.value = value
        self.reason = reason
        super().__init__(f"unusable legacy value at {path}: {reason}")


__all__ = ["RepositoryError", "ValidationError", "NotFoundError", "LegacyShapeError"]
