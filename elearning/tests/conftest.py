"""
Pytest configuration for the e-learning data layer tests.

Why: Every test runs against the in-memory tree store with a pinned clock and
deterministic ids so that written trees can be compared literally.
"""
from __future__ import annotations

import itertools

import pytest

from elearning.repository.generic import TreeRepository
from elearning.store.memory import MemoryTreeStore

FIXED_NOW = "2024-05-01T12:00:00.000Z"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer `.env` files and shell settings out of the tests."""
    for name in (
        "ELEARNING_STORE",
        "ELEARNING_DATABASE_URL",
        "ELEARNING_DATABASE_SECRET",
        "ELEARNING_CANONICAL_ROOT",
        "ELEARNING_LEGACY_ROOT",
        "ELEARNING_HTTP_TIMEOUT",
        "ELEARNING_ROSTER_CONCURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ELEARNING_ENABLE_DOTENV", "false")


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def id_provider():
    counter = itertools.count(1)
    return lambda: f"id{next(counter)}"


@pytest.fixture
def store() -> MemoryTreeStore:
    return MemoryTreeStore()


@pytest.fixture
def repo(store: MemoryTreeStore, clock, id_provider) -> TreeRepository:
    return TreeRepository(store, root="elearning", id_provider=id_provider, clock=clock)
