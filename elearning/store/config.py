"""
Store and engine configuration parsing and validation.

Intent:
    Read every environment variable that selects the backing store, its
    credentials and the tree roots in one place, with explicit defaults and
    validation so tests can exercise config behavior without a database.

Env:
    ELEARNING_STORE              "firebase" (default) or "memory"
    ELEARNING_DATABASE_URL       https URL of the database (firebase only)
    ELEARNING_DATABASE_SECRET    optional auth token appended as `?auth=`
    ELEARNING_CANONICAL_ROOT     canonical root node (default "elearning")
    ELEARNING_LEGACY_ROOT        legacy root scanned by cleanup (default "Elearning")
    ELEARNING_HTTP_TIMEOUT       seconds, 1..300 (default 10)
    ELEARNING_ROSTER_CONCURRENCY parallel user lookups, 1..32 (default 8)
    ELEARNING_ENABLE_DOTENV      "false" disables `.env` loading in the CLI
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from dotenv import load_dotenv

from . import paths

CANONICAL_ROOT_DEFAULT = "elearning"
LEGACY_ROOT_DEFAULT = "Elearning"


@dataclass(frozen=True)
class StoreConfig:
    backend: str  # "firebase" | "memory"
    database_url: Optional[str]
    secret: Optional[str]
    canonical_root: str
    legacy_root: str
    timeout_seconds: int
    roster_concurrency: int


def _int_env(name: str, default: int, *, maximum: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value <= 0 or value > maximum:
        raise ValueError(f"{name} out of range (1..{maximum}), got: {value}")
    return value


def _root_env(name: str, default: str) -> str:
    value = paths.join((os.getenv(name) or default).strip())
    if not value:
        raise ValueError(f"{name} must not be empty")
    return value


def _validate_database_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme != "https":
        if parsed.scheme == "http" and (parsed.hostname or "") in {"localhost", "127.0.0.1"}:
            return
        raise ValueError("ELEARNING_DATABASE_URL must start with https:// (http only for localhost emulators)")
    if not parsed.hostname:
        raise ValueError("ELEARNING_DATABASE_URL must include a hostname")


def load_store_config() -> StoreConfig:
    """Parse and validate store configuration from environment variables.

    Behavior:
        - `ELEARNING_STORE` selects the adapter; the URL is mandatory for firebase.
        - Roots are normalized (no leading/trailing slashes).
        - Raises ValueError with the offending variable name on bad input.
    """
    backend = (os.getenv("ELEARNING_STORE") or "firebase").strip().lower()
    if backend not in {"firebase", "memory"}:
        raise ValueError("ELEARNING_STORE must be 'firebase' or 'memory'")
    url = (os.getenv("ELEARNING_DATABASE_URL") or "").strip() or None
    if backend == "firebase":
        if not url:
            raise ValueError("ELEARNING_DATABASE_URL is required when ELEARNING_STORE=firebase")
        _validate_database_url(url)
    secret = (os.getenv("ELEARNING_DATABASE_SECRET") or "").strip() or None
    return StoreConfig(
        backend=backend,
        database_url=url,
        secret=secret,
        canonical_root=_root_env("ELEARNING_CANONICAL_ROOT", CANONICAL_ROOT_DEFAULT),
        legacy_root=_root_env("ELEARNING_LEGACY_ROOT", LEGACY_ROOT_DEFAULT),
        timeout_seconds=_int_env("ELEARNING_HTTP_TIMEOUT", 10, maximum=300),
        roster_concurrency=_int_env("ELEARNING_ROSTER_CONCURRENCY", 8, maximum=32),
    )


def _should_load_dotenv() -> bool:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    return (os.getenv("ELEARNING_ENABLE_DOTENV") or "true").strip().lower() != "false"


def load_env_file() -> bool:
    """Load a local `.env` into the environment unless disabled.

    Existing variables are never overridden. Returns True when a file was loaded.
    """
    if not _should_load_dotenv():
        return False
    return load_dotenv(override=False)


__all__ = [
    "CANONICAL_ROOT_DEFAULT",
    "LEGACY_ROOT_DEFAULT",
    "StoreConfig",
    "load_store_config",
    "load_env_file",
]
