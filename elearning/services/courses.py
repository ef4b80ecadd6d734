"""Courses service (catalog records and the instructor relation).

Behavior:
    - Creating or reassigning a course appends its id to the instructor
      satellite's `courses` list (only when that satellite exists).
    - Deleting a course does not touch its modules; they keep their
      `courseId` and become orphans. The count is logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..repository import layout
from ..repository.generic import Collection, TreeRepository
from ..store import paths
from .relations import append_unique

_log = logging.getLogger("elearning.services.courses")


@dataclass
class CoursesService:
    repo: TreeRepository
    courses: Collection = field(init=False)

    def __post_init__(self) -> None:
        self.courses = self.repo.collection(layout.COURSES, "course")

    def list_courses(self) -> List[Dict[str, Any]]:
        return self.courses.list()

    def get_course(self, course_id: str) -> Optional[Dict[str, Any]]:
        return self.courses.get(course_id)

    def list_by_instructor(self, instructor_id: str) -> List[Dict[str, Any]]:
        """Courses whose `instructorId` or legacy `formateur` is `instructor_id`."""
        raw = self.repo.read(layout.COURSES)
        if not instructor_id or not isinstance(raw, Mapping):
            return []
        owned: List[Dict[str, Any]] = []
        for course_id, course in raw.items():
            if not isinstance(course, Mapping):
                continue
            if instructor_id not in (course.get("instructorId"), course.get("formateur")):
                continue
            record = self.courses.get(course_id)
            if record is not None:
                owned.append(record)
        return owned

    def _attach_instructor(self, instructor_id: str, course_id: str) -> None:
        if not instructor_id:
            return
        if append_unique(self.repo, paths.join(layout.INSTRUCTORS, instructor_id), "courses", course_id):
            _log.info("attached course %s to instructor %s", course_id, instructor_id)

    def create_course(self, data: Mapping[str, Any]) -> str:
        course_id = self.courses.create(data)
        course = self.courses.get(course_id) or {}
        self._attach_instructor(course.get("instructorId") or "", course_id)
        return course_id

    def update_course(self, course_id: str, data: Mapping[str, Any]) -> bool:
        self.courses.update(course_id, data)
        if data.get("instructorId"):
            self._attach_instructor(str(data["instructorId"]), course_id)
        return True

    def delete_course(self, course_id: str) -> bool:
        course = self.courses.get(course_id)
        self.courses.delete(course_id)
        orphans = len((course or {}).get("modules") or {})
        if orphans:
            _log.warning("course %s deleted; %s module(s) left without a course", course_id, orphans)
        return True


__all__ = ["CoursesService"]
