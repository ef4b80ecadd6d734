"""
Canonical entity shapes shared by the validator and the standardizer.

Intent:
    Describe every entity kind once: which fields exist, which legacy names map
    onto them, what default fills a missing value and which constraints apply.
    `standardize` walks these tables to build canonical records, `validate`
    walks them to report violations. Kind-specific coercions (membership maps,
    resources, module progress) stay in the standardizer.

Field types:
    - "str": free text, default ''
    - "number": int/float (bool excluded), optional range
    - "bool": strict boolean
    - "timestamp": ISO-8601 string, default is the injected clock
    - "map" / "list": containers
    - "any": copied through untouched
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


ROLES = frozenset({"student", "instructor", "admin"})
LEVELS = frozenset({"beginner", "intermediate", "advanced"})
EVALUATION_TYPES = frozenset({"quiz", "assignment"})
ENROLLMENT_STATUSES = frozenset({"active", "completed", "paused"})
RESOURCE_TYPES = frozenset({"video", "pdf", "link"})

KINDS = ("user", "course", "module", "evaluation", "enrollment", "progress", "feedback")

# Marker for defaults that come from the injected clock.
NOW = object()


@dataclass(frozen=True)
class FieldSpec:
    name: str
    type: str = "str"
    default: Any = ""
    aliases: Tuple[str, ...] = ()
    required: bool = False
    enum: Optional[frozenset] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None


@dataclass(frozen=True)
class EntitySchema:
    kind: str
    fields: Tuple[FieldSpec, ...]
    keeps_id: bool = True
    passthrough: Tuple[str, ...] = ()
    by_name: Dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_name", {f.name: f for f in self.fields})

    @property
    def required(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)


USER = EntitySchema(
    kind="user",
    fields=(
        FieldSpec("firstName", aliases=("prenom",), required=True),
        FieldSpec("lastName", aliases=("nom",), required=True),
        FieldSpec("email", required=True),
        FieldSpec("role", default="student", aliases=("userType",), enum=ROLES),
        FieldSpec("createdAt", type="timestamp", default=NOW),
        FieldSpec("updatedAt", type="timestamp", default=NOW),
        FieldSpec("avatar"),
    ),
)

COURSE = EntitySchema(
    kind="course",
    fields=(
        FieldSpec("title", aliases=("titre",), required=True),
        FieldSpec("description", required=True),
        FieldSpec("content", aliases=("contenu",)),
        FieldSpec("duration", type="any", default=0, aliases=("duree",)),
        FieldSpec("image"),
        FieldSpec("instructorId", aliases=("formateur",)),
        FieldSpec("category"),
        FieldSpec("level", default="beginner", enum=LEVELS),
        FieldSpec("price", type="number", default=0, minimum=0),
        FieldSpec("rating", type="number", default=0, minimum=0, maximum=5),
        FieldSpec("totalRatings", type="number", default=0, minimum=0),
        FieldSpec("createdAt", type="timestamp", default=NOW),
        FieldSpec("updatedAt", type="timestamp", default=NOW),
        FieldSpec("modules", type="map", default=None),
    ),
)

MODULE = EntitySchema(
    kind="module",
    passthrough=("placeholder",),
    fields=(
        FieldSpec("courseId", required=True, aliases=("cours",)),
        FieldSpec("title", aliases=("titre",), required=True),
        FieldSpec("description"),
        FieldSpec("order", type="number", default=0, aliases=("ordre",), minimum=0),
        FieldSpec("content", aliases=("contenu",)),
        FieldSpec("duration", type="any", default=0, aliases=("duree",)),
        FieldSpec("resources", type="list", default=None),
        FieldSpec("createdAt", type="timestamp", default=NOW),
        FieldSpec("updatedAt", type="timestamp", default=NOW),
    ),
)

EVALUATION = EntitySchema(
    kind="evaluation",
    passthrough=("courseId", "placeholder"),
    fields=(
        FieldSpec("moduleId", required=True),
        FieldSpec("title", aliases=("titre",), required=True),
        FieldSpec("type", default="quiz", enum=EVALUATION_TYPES),
        FieldSpec("description"),
        FieldSpec("questions", type="list", default=None),
        FieldSpec("maxScore", type="number", default=100, minimum=0),
        FieldSpec("passingScore", type="number", default=70, minimum=0),
        FieldSpec("createdAt", type="timestamp", default=NOW, aliases=("date",)),
        FieldSpec("updatedAt", type="timestamp", default=NOW),
    ),
)

ENROLLMENT = EntitySchema(
    kind="enrollment",
    passthrough=("userName", "userEmail", "courseName", "enrolledBy"),
    keeps_id=False,
    fields=(
        FieldSpec("userId", aliases=("apprenant", "utilisateur"), required=True),
        FieldSpec("courseId", aliases=("course", "formation", "cours"), required=True),
        FieldSpec("enrolledAt", type="timestamp", default=NOW, aliases=("dateInscription", "date"), required=True),
        FieldSpec("status", default="active", aliases=("statut",), enum=ENROLLMENT_STATUSES),
    ),
)

PROGRESS = EntitySchema(
    kind="progress",
    passthrough=("score", "details"),
    keeps_id=False,
    fields=(
        FieldSpec("courseId", required=True),
        FieldSpec("userId", required=True),
        FieldSpec("startDate", type="timestamp", default=NOW),
        FieldSpec("progress", type="number", default=0, aliases=("progression",), minimum=0, maximum=100),
        FieldSpec("completed", type="bool", default=False),
        FieldSpec("lastUpdated", type="timestamp", default=NOW),
        FieldSpec("modules", type="map", default=None),
    ),
)

FEEDBACK = EntitySchema(
    kind="feedback",
    fields=(
        FieldSpec("userId", aliases=("utilisateur",), required=True),
        FieldSpec("courseId", aliases=("cours",), required=True),
        FieldSpec("rating", type="number", default=0, aliases=("note",), minimum=1, maximum=5),
        FieldSpec("comment", aliases=("commentaire",)),
        FieldSpec("createdAt", type="timestamp", default=NOW, aliases=("date",)),
    ),
)

SCHEMAS: Dict[str, EntitySchema] = {
    s.kind: s for s in (USER, COURSE, MODULE, EVALUATION, ENROLLMENT, PROGRESS, FEEDBACK)
}

# Keys of a progress node that are never module entries.
PROGRESS_RESERVED_KEYS = (
    frozenset(f.name for f in PROGRESS.fields)
    | frozenset(alias for f in PROGRESS.fields for alias in f.aliases)
    | frozenset(PROGRESS.passthrough)
)

# Module progress entry shape.
MODULE_PROGRESS_FIELDS = ("moduleId", "completed", "score", "lastUpdated")


def get_schema(kind: str) -> EntitySchema:
    try:
        return SCHEMAS[kind]
    except KeyError as exc:
        raise ValueError(f"unknown_kind:{kind}") from exc


__all__ = [
    "ROLES",
    "LEVELS",
    "EVALUATION_TYPES",
    "ENROLLMENT_STATUSES",
    "RESOURCE_TYPES",
    "KINDS",
    "NOW",
    "FieldSpec",
    "EntitySchema",
    "SCHEMAS",
    "PROGRESS_RESERVED_KEYS",
    "MODULE_PROGRESS_FIELDS",
    "get_schema",
]
