from __future__ import annotations

import copy
from typing import Any, Dict, List

import pytest

from elearning.store.memory import MemoryTreeStore
from elearning.store.ports import StoreError
from elearning.tools import legacy_migration as migration
from elearning.tools.legacy_paths import BY_USER, NESTED, LegacyPathSpec

LEGACY: Dict[str, Any] = {
    "Elearning": {
        "Utilisateurs": {
            "u1": {"prenom": "Lea", "nom": "Martin", "email": "lea@x.com", "userType": "student", "progression": 10},
            "u2": {"prenom": "Bad", "nom": "Mail", "email": "not-an-email"},
        },
        "Formateurs": {"f1": {"prenom": "Ana", "nom": "Diaz", "email": "a@x.com"}},
        "Cours": {
            "c1": {
                "titre": "Python",
                "description": "Basics",
                "formateur": "f1",
                "modules": [{"titre": "Intro"}, {"titre": "Loops", "ordre": 1}, "m9"],
            },
            "c2": {"description": "No title"},
        },
        "Modules": {"m9": {"cours": "c1", "titre": "Extra", "ordre": 1}, "m7": {"cours": "gone", "titre": "Lost"}},
        "Evaluations": {
            "m9": {"e1": {"titre": "Quiz 1"}},
            "e2": {"moduleId": "m1_c1", "titre": "Final", "type": "Quiz"},
        },
        "Enrollments": {"byUser": {"u1": {"c1": {"enrolledAt": "2024-01-01T00:00:00Z"}}}},
        "Progression": {"u1": {"c1": {"progression": 50, "m1_c1": {"completed": True, "score": 80}}}},
        "Feedback": {"fb1": {"utilisateur": "u1", "cours": "c1", "note": 5, "commentaire": "Great"}},
    },
    "Inscriptions": {
        "i1": {"apprenant": "u1", "formation": "c1", "dateInscription": "2024-02-01", "statut": "Completed"},
        "i2": {"apprenant": "u2"},
        "broken": "yes",
    },
    "Formations": {"f9": {"titre": "Old"}, "Formations": {"f10": {"titre": "Nested"}}},
}


@pytest.fixture
def legacy_store() -> MemoryTreeStore:
    return MemoryTreeStore(copy.deepcopy(LEGACY))


def _phase(result, name):
    return next(p for p in result.phases if p.name == name)


def test_instructor_path_implies_role():
    store = MemoryTreeStore({"Elearning": {"Formateurs": {"f1": {"prenom": "Ana", "nom": "Diaz", "email": "a@x.com"}}}})
    result = migration.run_migration(store, clock=lambda: "2024-05-01T00:00:00.000Z")
    assert result.success is True
    user = store.read("elearning/users/f1")
    assert (user["firstName"], user["lastName"], user["role"]) == ("Ana", "Diaz", "instructor")
    assert store.read("elearning/instructors/f1") == {"userId": "f1", "bio": "", "expertise": ""}


def test_full_migration_rebuilds_canonical_layout(legacy_store: MemoryTreeStore, clock):
    lines: List[str] = []
    result = migration.run_migration(legacy_store, log_sink=lines.append, clock=clock)

    assert result.success is True
    assert result.message == "Database migration completed successfully"
    assert [p.name for p in result.phases] == list(migration.STAGES)
    assert "Phase users: 3 items" in lines

    # users + satellites
    assert legacy_store.read("elearning/users/u1/role") == "student"
    assert legacy_store.read("elearning/students/u1") == {"userId": "u1", "progress": 10, "enrollments": ["c1"]}
    assert legacy_store.read("elearning/users/u2/email") == "not-an-email"
    assert any("email is invalid" in w for w in _phase(result, "users").warnings)

    # courses, including the nested Formations/Formations location
    assert legacy_store.read("elearning/courses/c1/instructorId") == "f1"
    assert legacy_store.read("elearning/courses/c2/title") == "Course c2"
    assert legacy_store.read("elearning/courses/f10/title") == "Nested"
    assert legacy_store.read("elearning/courses/Formations") is None
    assert legacy_store.read("elearning/instructors/f1/courses") == ["c1"]

    # modules: unique order per course and membership
    orders = {mid: legacy_store.read(f"elearning/modules/{mid}/order") for mid in ("m9", "m1_c1", "m2_c1")}
    assert orders == {"m9": 1, "m1_c1": 2, "m2_c1": 3}
    assert legacy_store.read("elearning/courses/c1/modules") == {"m9": True, "m1_c1": True, "m2_c1": True}
    assert legacy_store.read("elearning/modules/m7/courseId") == "gone"
    assert _phase(result, "modules").details["orphans"] == 1

    # evaluations from grouped and flat entries
    assert legacy_store.read("elearning/evaluations/e1/moduleId") == "m9"
    assert legacy_store.read("elearning/evaluations/e2/type") == "quiz"

    # enrollments: later sources win, both indexes identical, bad rows skipped
    by_course = legacy_store.read("elearning/enrollments/byCourse/c1/u1")
    assert by_course == legacy_store.read("elearning/enrollments/byUser/u1/c1")
    assert by_course["enrolledAt"] == "2024-02-01"
    assert by_course["status"] == "completed"
    assert _phase(result, "enrollments").skipped == 2

    # progress split into scalars and modules map
    progress = legacy_store.read("elearning/progress/u1/c1")
    assert progress["progress"] == 50
    assert progress["modules"]["m1_c1"]["score"] == 80
    assert "m1_c1" not in progress

    assert legacy_store.read("elearning/feedback/fb1/rating") == 5


def test_legacy_locations_are_left_untouched(legacy_store: MemoryTreeStore, clock):
    migration.run_migration(legacy_store, clock=clock)
    for key in ("Elearning", "Inscriptions", "Formations"):
        assert legacy_store.read(key) == MemoryTreeStore(copy.deepcopy(LEGACY)).read(key)


def test_rerun_converges_to_identical_tree(legacy_store: MemoryTreeStore, clock):
    first = migration.run_migration(legacy_store, clock=clock)
    snapshot = legacy_store.snapshot()
    second = migration.run_migration(legacy_store, clock=clock)
    assert first.success and second.success
    assert legacy_store.snapshot() == snapshot


def test_dry_run_does_not_write(legacy_store: MemoryTreeStore, clock):
    before = legacy_store.snapshot()
    lines: List[str] = []
    result = migration.run_migration(legacy_store, log_sink=lines.append, clock=clock, dry_run=True)
    assert result.success is True and result.dry_run is True
    assert _phase(result, "users").written == 3
    assert legacy_store.snapshot() == before
    assert lines[0] == "Starting legacy migration (DRY-RUN)"


class FailingStore(MemoryTreeStore):
    def write(self, path: str, value: Any) -> None:
        if path.startswith("elearning/evaluations/"):
            raise StoreError("boom", status=503)
        super().write(path, value)


def test_store_failure_halts_run_and_keeps_earlier_stages(clock):
    store = FailingStore(copy.deepcopy(LEGACY))
    result = migration.run_migration(store, clock=clock)
    assert result.success is False
    assert result.message == "Migration error: boom"
    assert [p.name for p in result.phases] == ["users", "courses", "modules", "evaluations"]
    assert result.phases[-1].status == "failed"
    assert store.read("elearning/users/u1") is not None
    assert store.read("elearning/enrollments") is None


def test_sources_table_is_pluggable(clock):
    store = MemoryTreeStore({"old": {"progress": {"u1": {"c1": {"m1": {"completed": True}}}}}})
    sources = {"progress": (LegacyPathSpec("old/progress", shape=BY_USER),)}
    result = migration.run_migration(store, clock=clock, sources=sources, root="canon")
    assert result.success is True
    assert store.read("canon/progress/u1/c1/modules/m1/completed") is True


def test_nested_list_entries_get_positional_ids_and_order():
    store = MemoryTreeStore({"src": {"c1": {"modules": [{"titre": "A"}, None, {"id": "x.y", "titre": "B"}, "ref"]}}})
    spec = LegacyPathSpec("src", shape=NESTED, child_field="modules", parent_field="courseId")
    items = list(migration.iter_legacy(store, spec))
    assert [(i.key, i.parent, i.position) for i in items] == [("m1_c1", "c1", 0), ("x-y", "c1", 2)]


def test_normalize_module_order_keeps_manual_positions():
    modules = [
        {"courseId": "c1", "order": 2},
        {"courseId": "c1", "order": 2},
        {"courseId": "c1", "order": 0},
        {"courseId": "c2", "order": 1},
    ]
    assert migration.normalize_module_order(modules) == 2
    assert [m["order"] for m in modules] == [2, 1, 3, 1]


def test_legacy_path_spec_rejects_incomplete_nested_entries():
    with pytest.raises(ValueError):
        LegacyPathSpec("x", shape="tree")
    with pytest.raises(ValueError):
        LegacyPathSpec("x", shape=NESTED, parent_field="courseId")
