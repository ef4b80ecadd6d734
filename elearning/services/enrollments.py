"""Enrollments service.

Storage:
    The same record is written to two indexes and every writer keeps both in
    sync (sequential writes, no transaction):
        enrollments/byCourse/{courseId}/{userId}
        enrollments/byUser/{userId}/{courseId}

Relations:
    The course id is appended to `students/{userId}/enrollments` when the
    student satellite exists.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..identity import CallerIdentity
from ..repository import layout
from ..repository.errors import NotFoundError, ValidationError
from ..repository.generic import TreeRepository
from ..schema.entities import ENROLLMENT_STATUSES
from ..schema.standardize import standardize
from ..schema.validation import validate
from ..store import paths
from .relations import append_unique, remove_value

_log = logging.getLogger("elearning.services.enrollments")


def _records(node: Any) -> List[Dict[str, Any]]:
    if not isinstance(node, Mapping):
        return []
    return [dict(value) for value in node.values() if isinstance(value, Mapping)]


@dataclass
class EnrollmentsService:
    repo: TreeRepository
    roster_concurrency: int = 8

    def _shape(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        return standardize("enrollment", record, now=self.repo.clock())

    def list_all(self) -> List[Dict[str, Any]]:
        """Every enrollment, read from the course index."""
        by_course = self.repo.read(layout.ENROLLMENTS_BY_COURSE)
        if not isinstance(by_course, Mapping):
            return []
        out: List[Dict[str, Any]] = []
        for course_id, users in by_course.items():
            for record in _records(users):
                out.append(self._shape({"courseId": course_id, **record}))
        return out

    def list_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        node = self.repo.read(layout.ENROLLMENTS_BY_USER, user_id)
        return [self._shape({"userId": user_id, **r}) for r in _records(node)]

    def list_by_course(self, course_id: str) -> List[Dict[str, Any]]:
        node = self.repo.read(layout.ENROLLMENTS_BY_COURSE, course_id)
        return [self._shape({"courseId": course_id, **r}) for r in _records(node)]

    def get(self, user_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        data = self.repo.read(layout.ENROLLMENTS_BY_COURSE, course_id, user_id)
        return self._shape(data) if isinstance(data, Mapping) else None

    def _write_both(self, record: Mapping[str, Any]) -> None:
        user_id, course_id = record["userId"], record["courseId"]
        self.repo.write(dict(record), layout.ENROLLMENTS_BY_COURSE, course_id, user_id)
        self.repo.write(dict(record), layout.ENROLLMENTS_BY_USER, user_id, course_id)

    def enroll(
        self,
        user_id: str,
        course_id: str,
        *,
        caller: Optional[CallerIdentity] = None,
        status: str = "active",
    ) -> Dict[str, Any]:
        """Enroll a user in a course and return the stored record.

        Raises:
            NotFoundError when the user or the course does not exist.
            ValidationError when the resulting record is invalid.
        Re-enrolling returns the existing record unchanged.
        """
        if self.repo.read(layout.USERS, user_id) is None:
            raise NotFoundError(self.repo.path(layout.USERS), user_id)
        if self.repo.read(layout.COURSES, course_id) is None:
            raise NotFoundError(self.repo.path(layout.COURSES), course_id)
        existing = self.get(user_id, course_id)
        if existing is not None:
            _log.info("user %s already enrolled in %s", user_id, course_id)
            return existing
        data: Dict[str, Any] = {
            "userId": user_id,
            "courseId": course_id,
            "enrolledAt": self.repo.clock(),
            "status": status,
        }
        if caller is not None:
            data["enrolledBy"] = caller.user_id
        record = self._shape(data)
        result = validate("enrollment", record)
        if not result.is_valid:
            raise ValidationError("enrollment", result.errors)
        self._write_both(record)
        append_unique(self.repo, paths.join(layout.STUDENTS, user_id), "enrollments", course_id)
        _log.info("enrolled user %s in course %s", user_id, course_id)
        return record

    def update_status(self, user_id: str, course_id: str, status: str) -> bool:
        if status not in ENROLLMENT_STATUSES:
            raise ValueError("invalid_status")
        existing = self.get(user_id, course_id)
        if existing is None:
            raise NotFoundError(self.repo.path(layout.ENROLLMENTS_BY_COURSE, course_id), user_id)
        self.repo.merge({"status": status}, layout.ENROLLMENTS_BY_COURSE, course_id, user_id)
        self.repo.merge({"status": status}, layout.ENROLLMENTS_BY_USER, user_id, course_id)
        _log.info("enrollment %s/%s status=%s", course_id, user_id, status)
        return True

    def unenroll(self, user_id: str, course_id: str) -> bool:
        if self.get(user_id, course_id) is None:
            raise NotFoundError(self.repo.path(layout.ENROLLMENTS_BY_COURSE, course_id), user_id)
        self.repo.remove(layout.ENROLLMENTS_BY_COURSE, course_id, user_id)
        self.repo.remove(layout.ENROLLMENTS_BY_USER, user_id, course_id)
        remove_value(self.repo, paths.join(layout.STUDENTS, user_id), "enrollments", course_id)
        return True

    def course_roster(self, course_id: str) -> List[Dict[str, Any]]:
        """Enrollments of a course joined with their user records.

        User lookups run in bounded batches of `roster_concurrency`; a missing
        user yields `user: None`.
        """
        enrollments = self.list_by_course(course_id)
        size = max(1, int(self.roster_concurrency))
        roster: List[Dict[str, Any]] = []
        with ThreadPoolExecutor(max_workers=size) as pool:
            for start in range(0, len(enrollments), size):
                batch = enrollments[start:start + size]
                users = pool.map(lambda e: self.repo.fetch_by_id(layout.USERS, e["userId"], kind="user"), batch)
                for enrollment, user in zip(batch, users):
                    roster.append({**enrollment, "user": user})
        return roster


__all__ = ["EnrollmentsService"]
