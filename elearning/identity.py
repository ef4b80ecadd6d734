"""
Caller identity supplied by the host application's authentication layer.

The data layer trusts this identity as given: it only copies it into
attribution fields (e.g. `enrolledBy`). Authorization is the caller's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CallerIdentity:
    user_id: str
    email: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise ValueError("invalid_user_id")


__all__ = ["CallerIdentity"]
