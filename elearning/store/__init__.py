"""Backing tree store: port, adapters and configuration."""

from .firebase import FirebaseTreeStore
from .memory import MemoryTreeStore
from .ports import StoreError, TreeStore

__all__ = ["FirebaseTreeStore", "MemoryTreeStore", "StoreError", "TreeStore"]
