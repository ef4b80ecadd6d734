"""
Declarative table of legacy locations scanned by the migration.

Each entity kind lists `LegacyPathSpec` entries in scan order; later entries
overwrite earlier ones for the same id. Adding a legacy source is a change to
this table, not to the engine.

Shapes:
    flat       {id: record}
    by_user    {userId: {courseId: record}}
    by_course  {courseId: {userId: record}}
    nested     {parentId: {..., <child_field>: {id: record} | [record, ...]}}
    grouped    like flat, but a child holding only records is expanded as
               {parentId: {id: record}} (e.g. evaluations keyed by module)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

FLAT = "flat"
BY_USER = "by_user"
BY_COURSE = "by_course"
NESTED = "nested"
GROUPED = "grouped"

SHAPES = frozenset({FLAT, BY_USER, BY_COURSE, NESTED, GROUPED})


@dataclass(frozen=True)
class LegacyPathSpec:
    path: str
    shape: str = FLAT
    # attributes forced onto every record found here (e.g. role from the path)
    implied: Mapping[str, Any] = field(default_factory=dict)
    # legacy field name -> canonical field name, applied before standardizing
    aliases: Mapping[str, str] = field(default_factory=dict)
    child_field: Optional[str] = None
    parent_field: Optional[str] = None
    exclude: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.shape not in SHAPES:
            raise ValueError(f"unknown legacy shape: {self.shape}")
        if self.shape in (NESTED, GROUPED) and not self.parent_field:
            raise ValueError(f"{self.shape} spec for {self.path} needs parent_field")
        if self.shape == NESTED and not self.child_field:
            raise ValueError(f"nested spec for {self.path} needs child_field")

    def apply(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy with per-path aliases renamed and implied attributes forced."""
        out = dict(record)
        for legacy, canonical in self.aliases.items():
            if legacy in out and out.get(canonical) in (None, ""):
                out[canonical] = out.pop(legacy)
        out.update(self.implied)
        return out


MIGRATION_SOURCES: Dict[str, Tuple[LegacyPathSpec, ...]] = {
    "user": (
        LegacyPathSpec("users"),
        LegacyPathSpec("Elearning/Utilisateurs"),
        LegacyPathSpec("Elearning/Apprenants", implied={"role": "student"}),
        LegacyPathSpec("Elearning/Formateurs", implied={"role": "instructor"}),
        LegacyPathSpec("Elearning/Administrateurs", implied={"role": "admin"}),
    ),
    "course": (
        LegacyPathSpec("Elearning/Cours"),
        LegacyPathSpec("Elearning/Formations"),
        LegacyPathSpec("courses"),
        LegacyPathSpec("Formations", exclude=("Formations",)),
        LegacyPathSpec("Formations/Formations"),
    ),
    "module": (
        LegacyPathSpec("Elearning/Modules"),
        LegacyPathSpec("Elearning/Cours", shape=NESTED, child_field="modules", parent_field="courseId"),
    ),
    "evaluation": (
        LegacyPathSpec("Elearning/Evaluations", shape=GROUPED, parent_field="moduleId"),
        LegacyPathSpec("Elearning/Modules", shape=NESTED, child_field="evaluations", parent_field="moduleId"),
    ),
    "enrollment": (
        LegacyPathSpec("Elearning/Enrollments", exclude=("byUser", "byCourse")),
        LegacyPathSpec("Elearning/Enrollments/byUser", shape=BY_USER),
        LegacyPathSpec("Elearning/Enrollments/byCourse", shape=BY_COURSE),
        LegacyPathSpec("Elearning/Inscriptions"),
        LegacyPathSpec("enrollments"),
        LegacyPathSpec("Inscriptions"),
    ),
    "progress": (
        LegacyPathSpec("Elearning/Progression", shape=BY_USER),
    ),
    "feedback": (
        LegacyPathSpec("Elearning/Feedback"),
    ),
}


__all__ = [
    "FLAT",
    "BY_USER",
    "BY_COURSE",
    "NESTED",
    "GROUPED",
    "LegacyPathSpec",
    "MIGRATION_SOURCES",
]
