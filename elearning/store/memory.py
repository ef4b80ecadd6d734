"""
In-memory tree store used by tests, dry-runs and local experiments.

Mirrors the hosted tree's observable behavior where the engines depend on it:
empty containers and None are never stored, deleting the last child removes
the parent, and reads return copies so callers cannot mutate stored state.
"""
from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Callable, Dict, Mapping, Optional

from . import paths

_log = logging.getLogger("elearning.store")


def _prune(value: Any) -> Any:
    """Return a deep copy of `value` without None leaves or empty containers."""
    if isinstance(value, Mapping):
        pruned = {}
        for key, child in value.items():
            kept = _prune(child)
            if kept is not None:
                pruned[str(key)] = kept
        return pruned or None
    if isinstance(value, (list, tuple)):
        items = [_prune(child) for child in value]
        return items if any(item is not None for item in items) else None
    return copy.deepcopy(value)


class MemoryTreeStore:
    """Dict-backed TreeStore implementation."""

    def __init__(
        self,
        initial: Optional[Mapping[str, Any]] = None,
        *,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._root: Dict[str, Any] = _prune(initial) or {}
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def _node(self, parts: list[str]) -> Any:
        node: Any = self._root
        for seg in parts:
            if isinstance(node, dict):
                node = node.get(seg)
            elif isinstance(node, list) and seg.isdigit() and int(seg) < len(node):
                node = node[int(seg)]
            else:
                return None
            if node is None:
                return None
        return node

    def read(self, path: str) -> Any:
        return copy.deepcopy(self._node(paths.split(path)))

    def write(self, path: str, value: Any) -> None:
        parts = paths.split(path)
        pruned = _prune(value)
        if pruned is None:
            self.delete(path)
            return
        if not parts:
            if not isinstance(pruned, dict):
                raise ValueError("root must be a mapping")
            self._root = pruned
            return
        node = self._root
        for seg in parts[:-1]:
            child = node.get(seg)
            if not isinstance(child, dict):
                child = {}
                node[seg] = child
            node = child
        node[parts[-1]] = pruned
        _log.debug("write %s", path)

    def merge(self, path: str, partial: Mapping[str, Any]) -> None:
        for key, value in partial.items():
            self.write(paths.join(path, key), value)

    def delete(self, path: str) -> None:
        parts = paths.split(path)
        if not parts:
            self._root = {}
            return
        trail = [self._root]
        node: Any = self._root
        for seg in parts[:-1]:
            node = node.get(seg) if isinstance(node, dict) else None
            if not isinstance(node, dict):
                return
            trail.append(node)
        if parts[-1] not in node:
            return
        del node[parts[-1]]
        # drop parents left empty
        for depth in range(len(trail) - 1, 0, -1):
            if trail[depth]:
                break
            del trail[depth - 1][parts[depth - 1]]
        _log.debug("delete %s", path)

    def generate_id(self) -> str:
        return self._id_factory()

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole tree."""
        return copy.deepcopy(self._root)


__all__ = ["MemoryTreeStore"]
