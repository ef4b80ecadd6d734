"""
Non-throwing record validation per entity kind.

Every check runs and appends to `errors`; nothing short-circuits so callers
can report all violations at once. Input records are only read.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping

from .entities import RESOURCE_TYPES, EntitySchema, FieldSpec, SCHEMAS

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _present(value: Any) -> bool:
    return value is not None and not (isinstance(value, str) and not value.strip())


def _check_field(spec: FieldSpec, record: Mapping[str, Any], errors: List[str]) -> None:
    value = record.get(spec.name)
    if not _present(value):
        if spec.required:
            errors.append(f"{spec.name} is required")
        return
    if spec.type == "number":
        if not _is_number(value):
            errors.append(f"{spec.name} must be a number")
            return
        if spec.minimum is not None and value < spec.minimum:
            errors.append(f"{spec.name} must be >= {spec.minimum:g}")
        if spec.maximum is not None and value > spec.maximum:
            errors.append(f"{spec.name} must be <= {spec.maximum:g}")
    elif spec.type == "bool":
        if not isinstance(value, bool):
            errors.append(f"{spec.name} must be a boolean")
    elif spec.type == "map":
        if not isinstance(value, Mapping):
            errors.append(f"{spec.name} must be a map")
    elif spec.type == "list":
        if not isinstance(value, list):
            errors.append(f"{spec.name} must be a list")
    elif spec.type in ("str", "timestamp"):
        if not isinstance(value, str):
            errors.append(f"{spec.name} must be a string")
            return
    if spec.enum is not None and not (isinstance(value, str) and value in spec.enum):
        allowed = ", ".join(sorted(spec.enum))
        errors.append(f"{spec.name} must be one of [{allowed}], got {value!r}")


def _check_user(record: Mapping[str, Any], errors: List[str]) -> None:
    email = record.get("email")
    if isinstance(email, str) and email.strip() and not EMAIL_RE.match(email):
        errors.append("email is invalid")


def _check_module(record: Mapping[str, Any], errors: List[str]) -> None:
    resources = record.get("resources")
    if not isinstance(resources, list):
        return
    for idx, resource in enumerate(resources):
        if not isinstance(resource, Mapping):
            errors.append(f"resources[{idx}] must be an object")
            continue
        if not _present(resource.get("title")):
            errors.append(f"resources[{idx}].title is required")
        kind = resource.get("type")
        if not (isinstance(kind, str) and kind in RESOURCE_TYPES):
            allowed = ", ".join(sorted(RESOURCE_TYPES))
            errors.append(f"resources[{idx}].type must be one of [{allowed}], got {kind!r}")


def _check_evaluation(record: Mapping[str, Any], errors: List[str]) -> None:
    max_score = record.get("maxScore")
    passing = record.get("passingScore")
    if _is_number(max_score) and _is_number(passing) and passing > max_score:
        errors.append("passingScore must be <= maxScore")


def _check_progress(record: Mapping[str, Any], errors: List[str]) -> None:
    modules = record.get("modules")
    if not isinstance(modules, Mapping):
        return
    for module_id, entry in modules.items():
        if not isinstance(entry, Mapping):
            errors.append(f"modules.{module_id} must be an object")
            continue
        if "completed" in entry and not isinstance(entry["completed"], bool):
            errors.append(f"modules.{module_id}.completed must be a boolean")
        score = entry.get("score")
        if score is not None and not _is_number(score):
            errors.append(f"modules.{module_id}.score must be a number")


_EXTRA_CHECKS = {
    "user": _check_user,
    "module": _check_module,
    "evaluation": _check_evaluation,
    "progress": _check_progress,
}


def validate(kind: str, record: Any) -> ValidationResult:
    """Check `record` against the canonical constraints of `kind`.

    Never raises: unknown kinds and non-mapping records are reported as errors.
    """
    schema: EntitySchema | None = SCHEMAS.get(kind) if isinstance(kind, str) else None
    if schema is None:
        return ValidationResult(False, [f"unknown kind {kind!r}"])
    if not isinstance(record, Mapping):
        return ValidationResult(False, [f"{kind} record must be an object"])
    errors: List[str] = []
    if schema.keeps_id and "id" in record and not _present(record.get("id")):
        errors.append("id must not be empty")
    for spec in schema.fields:
        _check_field(spec, record, errors)
    extra = _EXTRA_CHECKS.get(kind)
    if extra is not None:
        extra(record, errors)
    return ValidationResult(not errors, errors)


def validate_user(record: Any) -> ValidationResult:
    return validate("user", record)


def validate_course(record: Any) -> ValidationResult:
    return validate("course", record)


def validate_module(record: Any) -> ValidationResult:
    return validate("module", record)


def validate_evaluation(record: Any) -> ValidationResult:
    return validate("evaluation", record)


def validate_enrollment(record: Any) -> ValidationResult:
    return validate("enrollment", record)


def validate_progress(record: Any) -> ValidationResult:
    return validate("progress", record)


def validate_feedback(record: Any) -> ValidationResult:
    return validate("feedback", record)


__all__ = [
    "ValidationResult",
    "EMAIL_RE",
    "validate",
    "validate_user",
    "validate_course",
    "validate_module",
    "validate_evaluation",
    "validate_enrollment",
    "validate_progress",
    "validate_feedback",
]
