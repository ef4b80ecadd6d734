"""Entity accessors built on the generic repository.

Re-export the services for convenient imports in application code and tests.
"""

from .courses import CoursesService
from .enrollments import EnrollmentsService
from .evaluations import EvaluationsService
from .feedback import FeedbackService
from .modules import ModulesService
from .progress import ProgressService
from .users import UsersService
from .wiring import Services, build_services

__all__ = [
    "CoursesService",
    "EnrollmentsService",
    "EvaluationsService",
    "FeedbackService",
    "ModulesService",
    "ProgressService",
    "UsersService",
    "Services",
    "build_services",
]
