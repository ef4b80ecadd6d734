from __future__ import annotations

import pytest

from elearning.repository import NotFoundError, TreeRepository
from elearning.services import ProgressService
from elearning.services.progress import completion_percent, round_half_up
from elearning.store.memory import MemoryTreeStore


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0.5, 1), (1.5, 2), (2.5, 3), (66.666, 67), (33.333, 33), (49.99, 50)],
)
def test_round_half_up(value, expected):
    assert round_half_up(value) == expected


@pytest.mark.parametrize(
    ("done", "total", "expected"),
    [(0, 0, 0), (1, 2, 50), (1, 3, 33), (2, 3, 67), (3, 3, 100), (1, 8, 13)],
)
def test_completion_percent(done, total, expected):
    assert completion_percent(done, total) == expected


def test_recalculate_from_sibling_module_entries(repo: TreeRepository, store: MemoryTreeStore, clock):
    store.write(
        "elearning/progress/u1/c1",
        {"progress": 0, "completed": False, "m1": {"completed": True, "score": 80}, "m2": {"completed": False}},
    )
    summary = ProgressService(repo).recalculate_course_progress("u1", "c1")
    assert summary["progress"] == 50
    assert summary["completed"] is False
    assert summary["totalModules"] == 2
    assert summary["completedModules"] == 1
    node = store.read("elearning/progress/u1/c1")
    assert node["progress"] == 50
    assert node["lastUpdated"] == clock()


def test_all_modules_completed_marks_course_completed(repo: TreeRepository, store: MemoryTreeStore):
    store.write(
        "elearning/progress/u1/c1",
        {"modules": {"m1": {"completed": True}, "m2": {"completed": True}}, "progress": 10},
    )
    summary = ProgressService(repo).recalculate_course_progress("u1", "c1")
    assert (summary["progress"], summary["completed"]) == (100, True)


def test_no_module_entries_leaves_node_unchanged(repo: TreeRepository, store: MemoryTreeStore):
    store.write("elearning/progress/u1/c1", {"progress": 30, "completed": False, "lastUpdated": "old"})
    summary = ProgressService(repo).recalculate_course_progress("u1", "c1")
    assert summary["totalModules"] == 0
    assert store.read("elearning/progress/u1/c1") == {"progress": 30, "completed": False, "lastUpdated": "old"}


def test_recalculate_missing_node_raises(repo: TreeRepository):
    with pytest.raises(NotFoundError):
        ProgressService(repo).recalculate_course_progress("u1", "c1")


def test_initialize_uses_course_membership(repo: TreeRepository, store: MemoryTreeStore, clock):
    store.write("elearning/courses/c1", {"title": "T", "modules": {"m1": True, "m2": True}})
    record = ProgressService(repo).initialize("u1", "c1")
    assert set(record["modules"]) == {"m1", "m2"}
    assert record["startDate"] == clock()
    assert record["progress"] == 0 and record["completed"] is False
    with pytest.raises(NotFoundError):
        ProgressService(repo).initialize("u1", "missing")


def test_update_module_progress_folds_legacy_sibling(repo: TreeRepository, store: MemoryTreeStore):
    store.write("elearning/progress/u1/c1", {"m1": {"completed": False, "score": 10}, "m2": {"completed": True}})
    service = ProgressService(repo)
    summary = service.update_module_progress("u1", "c1", "m1", {"completed": True, "score": 95})
    assert (summary["progress"], summary["completed"]) == (100, True)
    node = store.read("elearning/progress/u1/c1")
    assert "m1" not in node
    assert node["modules"]["m1"]["score"] == 95
    assert service.get("u1", "c1")["modules"]["m2"]["completed"] is True


def test_update_module_progress_creates_missing_node(repo: TreeRepository):
    summary = ProgressService(repo).update_module_progress("u9", "c9", "m1", {"completed": False})
    assert summary == {
        "totalModules": 1,
        "completedModules": 0,
        "progress": 0,
        "completed": False,
        "lastUpdated": summary["lastUpdated"],
    }


def test_overall_progress(repo: TreeRepository, store: MemoryTreeStore):
    service = ProgressService(repo)
    assert service.overall_progress("nobody") == {"enrolledCourses": 0, "completedCourses": 0, "overallProgress": 0}
    store.write(
        "elearning/progress/u1",
        {"c1": {"progress": 100, "completed": True}, "c2": {"progress": 25}, "c3": {"progress": 0, "completed": False}},
    )
    assert service.overall_progress("u1") == {"enrolledCourses": 3, "completedCourses": 1, "overallProgress": 42}


def test_non_object_sibling_counts_as_unfinished_module(repo: TreeRepository, store: MemoryTreeStore):
    store.write("elearning/progress/u1/c1", {"progress": 0, "m1": {"completed": True}, "m2": True})
    summary = ProgressService(repo).recalculate_course_progress("u1", "c1")
    assert (summary["totalModules"], summary["completedModules"]) == (2, 1)
    assert (summary["progress"], summary["completed"]) == (50, False)


def test_legacy_progression_alias_is_not_a_module(repo: TreeRepository, store: MemoryTreeStore):
    store.write("elearning/progress/u1/c1", {"progression": 40, "m1": {"completed": True}})
    summary = ProgressService(repo).recalculate_course_progress("u1", "c1")
    assert summary["totalModules"] == 1
    assert summary["progress"] == 100
