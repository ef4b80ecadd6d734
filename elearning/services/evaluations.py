"""Evaluations service (quizzes and assignments owned by a module)."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..repository import layout
from ..repository.errors import NotFoundError
from ..repository.generic import Collection, TreeRepository


@dataclass
class EvaluationsService:
    repo: TreeRepository
    evaluations: Collection = field(init=False)

    def __post_init__(self) -> None:
        self.evaluations = self.repo.collection(layout.EVALUATIONS, "evaluation")

    def list_evaluations(self) -> List[Dict[str, Any]]:
        return self.evaluations.list()

    def list_by_module(self, module_id: str) -> List[Dict[str, Any]]:
        return [e for e in self.evaluations.list() if e.get("moduleId") == module_id]

    def get_evaluation(self, evaluation_id: str) -> Optional[Dict[str, Any]]:
        return self.evaluations.get(evaluation_id)

    def create_evaluation(self, data: Mapping[str, Any]) -> str:
        module_id = str(data.get("moduleId") or "")
        if not module_id or self.repo.read(layout.MODULES, module_id) is None:
            raise NotFoundError(self.repo.path(layout.MODULES), module_id)
        return self.evaluations.create(data)

    def update_evaluation(self, evaluation_id: str, data: Mapping[str, Any]) -> bool:
        return self.evaluations.update(evaluation_id, data)

    def delete_evaluation(self, evaluation_id: str) -> bool:
        return self.evaluations.delete(evaluation_id)


__all__ = ["EvaluationsService"]
