"""Feedback service (course ratings and comments)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from ..repository import layout
from ..repository.generic import Collection, TreeRepository


@dataclass
class FeedbackService:
    repo: TreeRepository
    feedback: Collection = field(init=False)

    def __post_init__(self) -> None:
        self.feedback = self.repo.collection(layout.FEEDBACK, "feedback")

    def list_feedback(self) -> List[Dict[str, Any]]:
        return self.feedback.list()

    def list_by_course(self, course_id: str) -> List[Dict[str, Any]]:
        return [f for f in self.feedback.list() if f.get("courseId") == course_id]

    def create_feedback(self, data: Mapping[str, Any]) -> str:
        return self.feedback.create(data)

    def update_feedback(self, feedback_id: str, data: Mapping[str, Any]) -> bool:
        return self.feedback.update(feedback_id, data)

    def delete_feedback(self, feedback_id: str) -> bool:
        return self.feedback.delete(feedback_id)


__all__ = ["FeedbackService"]
