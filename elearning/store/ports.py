"""
Backing store port consumed by the repository, services and engines.

Keep this small and framework-agnostic so tests can supply simple fakes. The
store is a hierarchical key/value tree addressed by slash-separated paths
(`elearning/users/u1`). It offers no schema, no transactions and no secondary
indexes; callers maintain denormalized copies themselves.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class StoreError(RuntimeError):
    """Raised by adapters when the backing store rejects or fails a call."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class TreeStore(Protocol):
    """Minimal tree interface.

    Semantics:
        - read(path): the subtree at `path`, or None when absent.
        - write(path, value): overwrite the subtree; None or an empty container
          removes it.
        - merge(path, partial): shallow key merge; each key is overwritten.
        - delete(path): remove the subtree (no error when absent).
        - generate_id(): a fresh unique key.
    """

    def read(self, path: str) -> Any: ...

    def write(self, path: str, value: Any) -> None: ...

    def merge(self, path: str, partial: Mapping[str, Any]) -> None: ...

    def delete(self, path: str) -> None: ...

    def generate_id(self) -> str: ...


__all__ = ["StoreError", "TreeStore"]
