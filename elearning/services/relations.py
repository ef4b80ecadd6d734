"""
Helpers that maintain denormalized relation lists and maps in the tree.

Lists such as `students/{id}/enrollments` or `instructors/{id}/courses` may
come back from the hosted tree either as arrays or as index-keyed maps
(sparse arrays); both are read as plain lists of ids.
"""
from __future__ import annotations

from typing import Any, List, Mapping

from ..repository.generic import TreeRepository


def as_id_list(value: Any) -> List[str]:
    if isinstance(value, Mapping):
        items = list(value.values())
    elif isinstance(value, (list, tuple)):
        items = list(value)
    else:
        return []
    return [str(item) for item in items if isinstance(item, (str, int)) and not isinstance(item, bool) and str(item)]


def append_unique(repo: TreeRepository, owner_path: str, field: str, value: str) -> bool:
    """Append `value` to the id list `owner_path/field` when the owner exists.

    Returns True when the list changed. Missing owners are left untouched.
    """
    owner = repo.read(owner_path)
    if not isinstance(owner, Mapping):
        return False
    items = as_id_list(owner.get(field))
    if value in items:
        return False
    items.append(value)
    repo.merge({field: items}, owner_path)
    return True


def remove_value(repo: TreeRepository, owner_path: str, field: str, value: str) -> bool:
    owner = repo.read(owner_path)
    if not isinstance(owner, Mapping):
        return False
    items = as_id_list(owner.get(field))
    if value not in items:
        return False
    repo.merge({field: [item for item in items if item != value]}, owner_path)
    return True


__all__ = ["as_id_list", "append_unique", "remove_value"]
