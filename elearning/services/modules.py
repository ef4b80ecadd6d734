"""Modules service.

Relations:
    A module is registered in its course's membership map
    (`courses/{courseId}/modules/{moduleId} = true`). Deletion detaches the
    membership entry first and then removes the module; if the second write
    fails the course no longer lists the module.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..repository import layout
from ..repository.errors import NotFoundError, ValidationError
from ..repository.generic import Collection, TreeRepository
from ..schema.entities import RESOURCE_TYPES
from ..schema.standardize import normalize_resource

_log = logging.getLogger("elearning.services.modules")


def _order_key(module: Mapping[str, Any]) -> tuple:
    order = module.get("order")
    if isinstance(order, (int, float)) and not isinstance(order, bool):
        return (0, order)
    return (1, 0)


@dataclass
class ModulesService:
    repo: TreeRepository
    modules: Collection = field(init=False)

    def __post_init__(self) -> None:
        self.modules = self.repo.collection(layout.MODULES, "module")

    def list_modules(self) -> List[Dict[str, Any]]:
        return self.modules.list()

    def list_by_course(self, course_id: str) -> List[Dict[str, Any]]:
        """Modules of a course sorted by `order` (stable for ties)."""
        owned = [m for m in self.modules.list() if m.get("courseId") == course_id]
        return sorted(owned, key=_order_key)

    def get_module(self, module_id: str) -> Optional[Dict[str, Any]]:
        return self.modules.get(module_id)

    def _require_course(self, course_id: str) -> None:
        if not course_id or self.repo.read(layout.COURSES, course_id) is None:
            raise NotFoundError(self.repo.path(layout.COURSES), course_id)

    def create_module(self, data: Mapping[str, Any]) -> str:
        course_id = str(data.get("courseId") or "")
        self._require_course(course_id)
        module_id = self.modules.create(data)
        self.repo.write(True, layout.COURSES, course_id, "modules", module_id)
        return module_id

    def _require_module(self, module_id: str) -> Dict[str, Any]:
        module = self.modules.get(module_id)
        if module is None:
            raise NotFoundError(self.repo.path(layout.MODULES), module_id)
        return module

    def update_module(self, module_id: str, data: Mapping[str, Any]) -> bool:
        before = self._require_module(module_id)
        new_course = data.get("courseId")
        if new_course and new_course != before.get("courseId"):
            self._require_course(str(new_course))
        self.modules.update(module_id, data)
        if new_course and new_course != before.get("courseId"):
            if before.get("courseId"):
                self.repo.remove(layout.COURSES, before["courseId"], "modules", module_id)
            self.repo.write(True, layout.COURSES, new_course, "modules", module_id)
            _log.info("moved module %s to course %s", module_id, new_course)
        return True

    def add_resource(self, module_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Append a resource to a module and return it with its new id."""
        module = self._require_module(module_id)
        resource = normalize_resource(data)
        if resource["type"] not in RESOURCE_TYPES:
            allowed = ", ".join(sorted(RESOURCE_TYPES))
            raise ValidationError("resource", [f"type must be one of [{allowed}], got {resource['type']!r}"])
        resource["id"] = self.repo.id_provider()
        resource["createdAt"] = self.repo.clock()
        self.modules.update(module_id, {"resources": [*module.get("resources", []), resource]})
        return resource

    def delete_resource(self, module_id: str, resource_id: str) -> bool:
        module = self._require_module(module_id)
        resources = module.get("resources", [])
        kept = [r for r in resources if not (isinstance(r, Mapping) and r.get("id") == resource_id)]
        if len(kept) == len(resources):
            raise NotFoundError(self.repo.path(layout.MODULES, module_id, "resources"), resource_id)
        self.modules.update(module_id, {"resources": kept})
        return True

    def delete_module(self, module_id: str) -> bool:
        module = self._require_module(module_id)
        course_id = module.get("courseId")
        if course_id:
            self.repo.remove(layout.COURSES, course_id, "modules", module_id)
        return self.modules.delete(module_id)


__all__ = ["ModulesService"]
