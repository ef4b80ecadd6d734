"""
Build the configured TreeStore.

Why:
    CLI commands and application code should not know which adapter backs the
    tree; they ask for `build_store()` and receive a TreeStore.
"""
from __future__ import annotations

import logging
from typing import Optional

from .config import StoreConfig, load_store_config
from .firebase import FirebaseTreeStore
from .memory import MemoryTreeStore
from .ports import TreeStore

_log = logging.getLogger("elearning.store")


def build_store(config: Optional[StoreConfig] = None) -> TreeStore:
    cfg = config or load_store_config()
    if cfg.backend == "memory":
        _log.info("Using in-memory tree store")
        return MemoryTreeStore()
    _log.info("Using Realtime Database store at %s", cfg.database_url)
    return FirebaseTreeStore(
        cfg.database_url or "",
        secret=cfg.secret,
        timeout=float(cfg.timeout_seconds),
    )


__all__ = ["build_store"]
