"""
Map arbitrarily shaped legacy records onto the canonical shape of each kind.

Behavior:
    - Canonical names win over legacy aliases; the first non-empty value is
      used (`None` and `''` count as missing, `0` and `False` do not).
    - Every canonical field is present in the output. Timestamps default to
      the `now` argument so callers can pin the clock.
    - Output is idempotent: standardizing a canonical record yields an equal
      record.
    - Input is never mutated; nested containers are copied.

Raises:
    ValueError("unknown_kind:<kind>") for kinds outside KINDS.
"""
from __future__ import annotations

import copy
import math
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from .entities import (
    NOW,
    PROGRESS_RESERVED_KEYS,
    EntitySchema,
    FieldSpec,
    get_schema,
)

_MISSING = object()


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and `Z` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value == "")


def _pick(record: Mapping[str, Any], spec: FieldSpec) -> Any:
    for name in (spec.name, *spec.aliases):
        value = record.get(name)
        if not is_missing(value):
            return value
    return _MISSING


def _default(spec: FieldSpec, stamp: str) -> Any:
    if spec.default is NOW:
        return stamp
    if spec.type == "map" and spec.default is None:
        return {}
    if spec.type == "list" and spec.default is None:
        return []
    return spec.default


def _coerce_number(value: Any) -> Any:
    if isinstance(value, str):
        raw = value.strip()
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            number = float(raw)
        except ValueError:
            return value
        return number if math.isfinite(number) else value
    return value


def _coerce(spec: FieldSpec, value: Any) -> Any:
    if spec.type == "number":
        return _coerce_number(value)
    if spec.enum is not None and isinstance(value, str):
        return value.strip().lower()
    return copy.deepcopy(value)


def _base(schema: EntitySchema, record: Mapping[str, Any], stamp: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    if schema.keeps_id and not is_missing(record.get("id")):
        out["id"] = record["id"]
    for spec in schema.fields:
        value = _pick(record, spec)
        out[spec.name] = _default(spec, stamp) if value is _MISSING else _coerce(spec, value)
    for name in schema.passthrough:
        if name in out:
            continue
        value = record.get(name)
        if not is_missing(value):
            out[name] = copy.deepcopy(value)
    return out


# --- Kind specific coercions --------------------------------------------------


def membership_map(value: Any) -> Dict[str, bool]:
    """Coerce a keyed map, list of ids or list of records into `{id: True}`."""
    members: Dict[str, bool] = {}
    if isinstance(value, Mapping):
        for key, flag in value.items():
            if flag is None or flag is False or flag == "":
                continue
            members[str(key)] = True
    elif isinstance(value, (list, tuple)):
        for entry in value:
            if isinstance(entry, str) and entry:
                members[entry] = True
            elif isinstance(entry, Mapping) and not is_missing(entry.get("id")):
                members[str(entry["id"])] = True
    return members


def normalize_resource(entry: Any) -> Dict[str, Any]:
    if isinstance(entry, str):
        return {"title": "Resource", "type": "link", "url": entry}
    if not isinstance(entry, Mapping):
        return {"title": "Resource", "type": "link", "url": ""}
    kind = entry.get("type")
    resource = {
        "title": entry.get("title") or entry.get("titre") or "Resource",
        "type": kind.strip().lower() if isinstance(kind, str) and kind.strip() else "link",
        "url": entry.get("url") or "",
    }
    for name in ("id", "createdAt"):
        if not is_missing(entry.get(name)):
            resource[name] = entry[name]
    return resource


def _as_list(value: Any) -> list:
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def normalize_module_progress(module_id: str, entry: Mapping[str, Any], stamp: str) -> Dict[str, Any]:
    score = entry.get("score")
    if is_missing(score):
        score = entry.get("bestScore")
    normalized = copy.deepcopy(dict(entry))
    normalized.update(
        {
            "moduleId": entry.get("moduleId") or module_id,
            "completed": entry.get("completed") is True,
            "score": 0 if is_missing(score) else _coerce_number(score),
            "lastUpdated": entry.get("lastUpdated") or stamp,
        }
    )
    return normalized


def module_entries(record: Mapping[str, Any]) -> Dict[str, Mapping[str, Any]]:
    """Return the per-module entries of a progress node.

    Reads the explicit `modules` map and also every sibling key outside the
    reserved progress fields. Explicit entries win on conflicts. A value that
    is not an object still counts as a module, one that is not completed.
    """
    entries: Dict[str, Mapping[str, Any]] = {}
    for key, value in record.items():
        if key in PROGRESS_RESERVED_KEYS:
            continue
        entries[str(key)] = value if isinstance(value, Mapping) else {}
    explicit = record.get("modules")
    if isinstance(explicit, Mapping):
        for key, value in explicit.items():
            entries[str(key)] = value if isinstance(value, Mapping) else {}
    return entries


def _split_full_name(full_name: str) -> tuple[str, str]:
    parts = full_name.strip().split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def _finish_user(out: Dict[str, Any], record: Mapping[str, Any]) -> None:
    full_name = record.get("fullName") or record.get("displayName")
    if isinstance(full_name, str) and full_name.strip():
        first, last = _split_full_name(full_name)
        if not out["firstName"]:
            out["firstName"] = first
        if not out["lastName"]:
            out["lastName"] = last
    role_info = record.get("roleInfo")
    if not out["avatar"] and isinstance(role_info, Mapping):
        out["avatar"] = role_info.get("avatar") or ""


def _finish_course(out: Dict[str, Any], record: Mapping[str, Any]) -> None:
    out["modules"] = membership_map(out["modules"])


def _finish_module(out: Dict[str, Any], record: Mapping[str, Any]) -> None:
    out["resources"] = [normalize_resource(r) for r in _as_list(out["resources"])]


def _finish_evaluation(out: Dict[str, Any], record: Mapping[str, Any]) -> None:
    out["questions"] = _as_list(out["questions"])


def _finish_enrollment(out: Dict[str, Any], record: Mapping[str, Any]) -> None:
    course = out["courseId"]
    if isinstance(course, Mapping):
        out["courseId"] = course.get("id") or ""


def _finish_progress(out: Dict[str, Any], record: Mapping[str, Any], stamp: str) -> None:
    out["modules"] = {
        module_id: normalize_module_progress(module_id, entry, stamp)
        for module_id, entry in module_entries(record).items()
    }


def standardize(kind: str, record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    """Return the canonical shape of `record` for `kind` with defaults filled."""
    schema = get_schema(kind)
    source: Mapping[str, Any] = record if isinstance(record, Mapping) else {}
    stamp = now or utc_now_iso()
    out = _base(schema, source, stamp)
    if kind == "user":
        _finish_user(out, source)
    elif kind == "course":
        _finish_course(out, source)
    elif kind == "module":
        _finish_module(out, source)
    elif kind == "evaluation":
        _finish_evaluation(out, source)
    elif kind == "enrollment":
        _finish_enrollment(out, source)
    elif kind == "progress":
        _finish_progress(out, source, stamp)
    return out


def satellite(role: str, user_id: str, record: Any = None) -> Dict[str, Any]:
    """Role-only record stored beside the user (`students/`, `instructors/`, `admins/`)."""
    source: Mapping[str, Any] = record if isinstance(record, Mapping) else {}
    if role == "instructor":
        return {
            "userId": user_id,
            "bio": source.get("bio") or "",
            "expertise": source.get("expertise") or "",
            "courses": [],
        }
    if role == "admin":
        return {"userId": user_id, "permissions": source.get("permissions") or "full"}
    role_info = source.get("roleInfo")
    progress = source.get("progression")
    if is_missing(progress) and isinstance(role_info, Mapping):
        progress = role_info.get("progression")
    return {
        "userId": user_id,
        "progress": 0 if is_missing(progress) else _coerce_number(progress),
        "enrollments": [],
    }


def standardize_user(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("user", record, now=now)


def standardize_course(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("course", record, now=now)


def standardize_module(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("module", record, now=now)


def standardize_evaluation(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("evaluation", record, now=now)


def standardize_enrollment(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("enrollment", record, now=now)


def standardize_progress(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("progress", record, now=now)


def standardize_feedback(record: Any, *, now: Optional[str] = None) -> Dict[str, Any]:
    return standardize("feedback", record, now=now)


__all__ = [
    "standardize",
    "standardize_user",
    "standardize_course",
    "standardize_module",
    "standardize_evaluation",
    "standardize_enrollment",
    "standardize_progress",
    "standardize_feedback",
    "membership_map",
    "module_entries",
    "normalize_module_progress",
    "normalize_resource",
    "satellite",
    "is_missing",
    "utc_now_iso",
]
