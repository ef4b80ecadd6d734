"""
Build the entity services from the store configuration.

Why:
    Application code asks for `build_services()` once and receives every
    service bound to the same repository, with the configured canonical root
    and roster batch size applied.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..repository.generic import Clock, IdProvider, TreeRepository
from ..store.config import StoreConfig, load_store_config
from ..store.ports import TreeStore
from ..store.wiring import build_store
from .courses import CoursesService
from .enrollments import EnrollmentsService
from .evaluations import EvaluationsService
from .feedback import FeedbackService
from .modules import ModulesService
from .progress import ProgressService
from .users import UsersService


@dataclass(frozen=True)
class Services:
    repo: TreeRepository
    users: UsersService
    courses: CoursesService
    modules: ModulesService
    evaluations: EvaluationsService
    enrollments: EnrollmentsService
    progress: ProgressService
    feedback: FeedbackService


def build_services(
    config: Optional[StoreConfig] = None,
    *,
    store: Optional[TreeStore] = None,
    clock: Optional[Clock] = None,
    id_provider: Optional[IdProvider] = None,
) -> Services:
    cfg = config or load_store_config()
    repo = TreeRepository(
        store if store is not None else build_store(cfg),
        root=cfg.canonical_root,
        id_provider=id_provider,
        clock=clock,
    )
    return Services(
        repo=repo,
        users=UsersService(repo),
        courses=CoursesService(repo),
        modules=ModulesService(repo),
        evaluations=EvaluationsService(repo),
        enrollments=EnrollmentsService(repo, roster_concurrency=cfg.roster_concurrency),
        progress=ProgressService(repo),
        feedback=FeedbackService(repo),
    )


__all__ = ["Services", "build_services"]
