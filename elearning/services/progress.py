"""Course progress service.

Node shape (`progress/{userId}/{courseId}`):
    {courseId, userId, startDate, progress, completed, lastUpdated,
     modules: {moduleId: {moduleId, completed, score, lastUpdated}}}

Older nodes keep module entries as sibling keys of the scalar fields; readers
accept both encodings and new writes always go to `modules`.

Recalculation:
    N module entries, K with completed=True
    progress  = round_half_up(100 * K / N)
    completed = N > 0 and K == N
    Nodes without module entries keep their stored progress.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from ..repository import layout
from ..repository.errors import NotFoundError, ValidationError
from ..repository.generic import TreeRepository
from ..schema.entities import PROGRESS_RESERVED_KEYS
from ..schema.standardize import module_entries, normalize_module_progress, standardize
from ..schema.validation import validate
from .relations import as_id_list

_log = logging.getLogger("elearning.services.progress")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def completion_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(100 * completed / total)


@dataclass
class ProgressService:
    repo: TreeRepository

    def get(self, user_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        node = self.repo.read(layout.PROGRESS, user_id, course_id)
        if not isinstance(node, Mapping):
            return None
        return standardize("progress", {"userId": user_id, "courseId": course_id, **node}, now=self.repo.clock())

    def initialize(
        self,
        user_id: str,
        course_id: str,
        module_ids: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        """Create a fresh progress node; modules default to the course membership map."""
        if module_ids is None:
            course = self.repo.read(layout.COURSES, course_id)
            if not isinstance(course, Mapping):
                raise NotFoundError(self.repo.path(layout.COURSES), course_id)
            members = course.get("modules")
            module_ids = list(members.keys()) if isinstance(members, Mapping) else as_id_list(members)
        stamp = self.repo.clock()
        record = standardize(
            "progress",
            {
                "userId": user_id,
                "courseId": course_id,
                "startDate": stamp,
                "progress": 0,
                "completed": False,
                "lastUpdated": stamp,
                "modules": {
                    mid: {"moduleId": mid, "completed": False, "score": 0, "lastUpdated": stamp}
                    for mid in module_ids
                },
            },
            now=stamp,
        )
        result = validate("progress", record)
        if not result.is_valid:
            raise ValidationError("progress", result.errors)
        self.repo.write(record, layout.PROGRESS, user_id, course_id)
        _log.info("initialized progress for %s in %s (%s modules)", user_id, course_id, len(record["modules"]))
        return record

    def update_module_progress(
        self,
        user_id: str,
        course_id: str,
        module_id: str,
        data: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Merge one module entry and recalculate the course aggregate."""
        node = self.repo.read(layout.PROGRESS, user_id, course_id)
        if not isinstance(node, Mapping):
            node = self.initialize(user_id, course_id, module_ids=[])
        current = module_entries(node).get(module_id, {})
        stamp = self.repo.clock()
        entry = normalize_module_progress(module_id, {**current, **data, "lastUpdated": stamp}, stamp)
        self.repo.write(entry, layout.PROGRESS, user_id, course_id, "modules", module_id)
        if module_id in node and module_id not in PROGRESS_RESERVED_KEYS:
            # fold a legacy sibling entry into the explicit map
            self.repo.remove(layout.PROGRESS, user_id, course_id, module_id)
        return self.recalculate_course_progress(user_id, course_id)

    def recalculate_course_progress(self, user_id: str, course_id: str) -> Dict[str, Any]:
        """Recompute `progress`, `completed` and `lastUpdated` from module entries."""
        node = self.repo.read(layout.PROGRESS, user_id, course_id)
        if not isinstance(node, Mapping):
            raise NotFoundError(self.repo.path(layout.PROGRESS, user_id), course_id)
        entries = module_entries(node)
        total = len(entries)
        done = sum(1 for entry in entries.values() if entry.get("completed") is True)
        summary: Dict[str, Any] = {
            "totalModules": total,
            "completedModules": done,
            "progress": node.get("progress", 0),
            "completed": node.get("completed", False),
            "lastUpdated": node.get("lastUpdated"),
        }
        if total == 0:
            return summary
        update = {
            "progress": completion_percent(done, total),
            "completed": done == total,
            "lastUpdated": self.repo.clock(),
        }
        self.repo.merge(update, layout.PROGRESS, user_id, course_id)
        summary.update(update)
        return summary

    def overall_progress(self, user_id: str) -> Dict[str, int]:
        """Course count, completed count and mean progress over a user's courses."""
        courses = self.repo.read(layout.PROGRESS, user_id)
        if not isinstance(courses, Mapping) or not courses:
            return {"enrolledCourses": 0, "completedCourses": 0, "overallProgress": 0}
        total = 0.0
        completed = 0
        for node in courses.values():
            if not isinstance(node, Mapping):
                continue
            value = node.get("progress")
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                total += value
            if node.get("completed") is True:
                completed += 1
        return {
            "enrolledCourses": len(courses),
            "completedCourses": completed,
            "overallProgress": round_half_up(total / len(courses)),
        }


__all__ = ["ProgressService", "round_half_up", "completion_percent"]
