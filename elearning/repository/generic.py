"""
Generic CRUD over the canonical tree.

Why:
    Every entity accessor shares the same read/create/update/delete rules:
    standardize, validate, then write under `{root}/{path}/{id}`. Keeping them
    here lets services stay thin and lets tests cover the rules once.

Behavior:
    - fetch_all: absent -> []; keyed map -> records with `id` set from keys;
      array -> returned as is.
    - fetch_by_id: record or None.
    - create: standardize + validate (ValidationError lists all violations),
      then a fresh id from the id provider; returns the id.
    - update: NotFoundError when absent; shallow merge (data wins, id kept),
      standardize + validate, overwrite; returns True.
    - delete: NotFoundError when absent; returns True.
    Every call is a sequential store round-trip; nothing is cached.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..schema.entities import get_schema
from ..schema.standardize import standardize, utc_now_iso
from ..schema.validation import validate
from ..store import paths
from ..store.config import CANONICAL_ROOT_DEFAULT
from ..store.ports import TreeStore
from .errors import NotFoundError, ValidationError

_log = logging.getLogger("elearning.repository")

Clock = Callable[[], str]
IdProvider = Callable[[], str]


class TreeRepository:
    """CRUD primitives bound to a store and a canonical root."""

    def __init__(
        self,
        store: TreeStore,
        *,
        root: str = CANONICAL_ROOT_DEFAULT,
        id_provider: Optional[IdProvider] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.store = store
        self.root = paths.join(root)
        self.id_provider = id_provider or store.generate_id
        self.clock = clock or utc_now_iso

    def path(self, *segments: object) -> str:
        return paths.join(self.root, *segments)

    # --- raw access used by services for relation maintenance -------------

    def read(self, *segments: object) -> Any:
        return self.store.read(self.path(*segments))

    def write(self, value: Any, *segments: object) -> None:
        self.store.write(self.path(*segments), value)

    def merge(self, partial: Mapping[str, Any], *segments: object) -> None:
        self.store.merge(self.path(*segments), partial)

    def remove(self, *segments: object) -> None:
        self.store.delete(self.path(*segments))

    # --- CRUD --------------------------------------------------------------

    def _shaped(self, value: Mapping[str, Any], record_id: str, kind: Optional[str]) -> Dict[str, Any]:
        # The tree drops empty containers; standardizing restores them.
        record = standardize(kind, value, now=self.clock()) if kind else dict(value)
        record["id"] = record_id
        return record

    def fetch_all(self, path: str, *, kind: Optional[str] = None) -> List[Any]:
        data = self.read(path)
        if data is None:
            return []
        if isinstance(data, list):
            return data
        if not isinstance(data, Mapping):
            _log.warning("fetch_all %s: expected a map, got %s", self.path(path), type(data).__name__)
            return []
        records: List[Any] = []
        for key, value in data.items():
            if isinstance(value, Mapping):
                records.append(self._shaped(value, key, kind))
            else:
                _log.debug("fetch_all %s: skipping non-record key %s", self.path(path), key)
        return records

    def fetch_by_id(self, path: str, record_id: str, *, kind: Optional[str] = None) -> Optional[Dict[str, Any]]:
        data = self.read(path, record_id)
        if data is None:
            return None
        if isinstance(data, Mapping):
            return self._shaped(data, record_id, kind)
        return data

    def _checked(self, kind: str, record: Mapping[str, Any]) -> Dict[str, Any]:
        standardized = standardize(kind, record, now=self.clock())
        result = validate(kind, standardized)
        if not result.is_valid:
            raise ValidationError(kind, result.errors)
        return standardized

    def create(self, path: str, data: Mapping[str, Any], *, kind: str) -> str:
        record = self._checked(kind, data)
        record_id = self.id_provider()
        record["id"] = record_id
        self.write(record, path, record_id)
        _log.info("created %s %s at %s", kind, record_id, self.path(path))
        return record_id

    def update(self, path: str, record_id: str, data: Mapping[str, Any], *, kind: str) -> bool:
        existing = self.read(path, record_id)
        if not isinstance(existing, Mapping):
            raise NotFoundError(self.path(path), record_id)
        merged = {**existing, **data, "id": record_id}
        if "updatedAt" in get_schema(kind).by_name and "updatedAt" not in data:
            merged["updatedAt"] = self.clock()
        record = self._checked(kind, merged)
        record["id"] = record_id
        self.write(record, path, record_id)
        _log.info("updated %s %s at %s", kind, record_id, self.path(path))
        return True

    def delete(self, path: str, record_id: str) -> bool:
        if self.read(path, record_id) is None:
            raise NotFoundError(self.path(path), record_id)
        self.remove(path, record_id)
        _log.info("deleted %s at %s", record_id, self.path(path))
        return True

    def collection(self, path: str, kind: str) -> "Collection":
        return Collection(repo=self, path=path, kind=kind)


@dataclass
class Collection:
    """A repository bound to one canonical path and entity kind."""

    repo: TreeRepository
    path: str
    kind: str

    def list(self) -> List[Any]:
        return self.repo.fetch_all(self.path, kind=self.kind)

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self.repo.fetch_by_id(self.path, record_id, kind=self.kind)

    def exists(self, record_id: str) -> bool:
        return self.repo.read(self.path, record_id) is not None

    def create(self, data: Mapping[str, Any]) -> str:
        return self.repo.create(self.path, data, kind=self.kind)

    def update(self, record_id: str, data: Mapping[str, Any]) -> bool:
        return self.repo.update(self.path, record_id, data, kind=self.kind)

    def delete(self, record_id: str) -> bool:
        return self.repo.delete(self.path, record_id)


__all__ = ["TreeRepository", "Collection", "Clock", "IdProvider"]
