"""
Helpers to build slash-separated tree paths.

Conventions:
    - Segments are joined with '/', leading/trailing/duplicate slashes dropped.
    - `safe_key` replaces characters the hosted tree rejects in keys
      ('.', '$', '#', '[', ']', '/') and control characters.
"""
from __future__ import annotations

import re
from typing import List

_FORBIDDEN_RE = re.compile(r"[.$#\[\]/\x00-\x1f\x7f]+")


def split(path: str) -> List[str]:
    return [seg for seg in (path or "").split("/") if seg]


def join(*segments: object) -> str:
    parts: List[str] = []
    for segment in segments:
        if segment is None:
            continue
        parts.extend(split(str(segment)))
    return "/".join(parts)


def safe_key(value: object, *, fallback: str = "x") -> str:
    text = str(value or "").strip()
    sanitized = _FORBIDDEN_RE.sub("-", text).strip("-")
    return sanitized or fallback


__all__ = ["split", "join", "safe_key"]
