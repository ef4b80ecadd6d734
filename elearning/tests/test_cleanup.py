from __future__ import annotations

from typing import Any, List

import pytest

from elearning.store.memory import MemoryTreeStore
from elearning.store.ports import StoreError
from elearning.tools import cleanup


def _phase(result, name):
    return next(p for p in result.phases if p.name == name)


def test_course_embedded_enrollment_lands_in_both_indexes(clock):
    store = MemoryTreeStore(
        {"Elearning": {"Cours": {"c1": {"titre": "Python", "enrollments": {"u1": {"enrolledAt": "2024-01-01T00:00:00Z"}}}}}}
    )
    result = cleanup.run_cleanup(store, clock=clock)
    assert result.success is True
    by_course = store.read("Elearning/Enrollments/byCourse/c1/u1")
    by_user = store.read("Elearning/Enrollments/byUser/u1/c1")
    assert by_course["enrolledAt"] == "2024-01-01T00:00:00Z"
    assert by_user == by_course
    assert by_course["courseName"] == "Python"
    assert _phase(result, "prune").status == "ok"


def test_flag_style_embedded_enrollment_gets_clock_timestamp(clock):
    store = MemoryTreeStore({"Elearning": {"Cours": {"c1": {"title": "T", "enrollments": {"u1": True, "u2": False}}}}})
    cleanup.run_cleanup(store, clock=clock)
    assert store.read("Elearning/Enrollments/byUser/u1/c1/enrolledAt") == clock()
    assert store.read("Elearning/Enrollments/byUser/u2") is None


def test_legacy_enrollment_locations_are_lifted_and_bad_rows_counted(clock):
    store = MemoryTreeStore(
        {
            "Inscriptions": {
                "i1": {"apprenant": "u1", "course": {"id": "c1"}, "date": "2024-03-01", "statut": "Paused"},
                "bad": {"apprenant": "u2"},
            },
            "enrollments": {"e1": {"userId": "u3", "formation": "c2", "userEmail": "u3@x.com"}},
            "Elearning": {"Inscriptions": ["oops"]},
        }
    )
    result = cleanup.run_cleanup(store, clock=clock)
    phase = _phase(result, "legacy_enrollments")
    assert (phase.written, phase.skipped) == (2, 2)
    assert store.read("Elearning/Enrollments/byCourse/c1/u1")["status"] == "paused"
    assert store.read("Elearning/Enrollments/byUser/u3/c2/userEmail") == "u3@x.com"


def test_prune_is_refused_after_skips_and_nothing_is_deleted(clock):
    store = MemoryTreeStore({"Inscriptions": {"bad": {"apprenant": "u2"}}})
    lines: List[str] = []
    result = cleanup.run_cleanup(store, log_sink=lines.append, clock=clock)
    assert result.success is True
    assert _phase(result, "prune").status == "refused"
    assert "--force-prune" in result.message
    assert store.read("Inscriptions") is not None
    assert any(line.startswith("Prune refused") for line in lines)


def test_force_prune_deletes_obsolete_paths(clock):
    store = MemoryTreeStore({"Inscriptions": {"bad": {"apprenant": "u2"}}, "enrollments": {"x": {"userId": "u"}}})
    result = cleanup.run_cleanup(store, clock=clock, force_prune=True)
    assert _phase(result, "prune").written == 2
    assert store.read("Inscriptions") is None
    assert store.read("enrollments") is None


@pytest.mark.parametrize(("kwargs", "reason"), [({"dry_run": True}, "dry_run"), ({"prune": False}, "prune disabled")])
def test_prune_disabled(kwargs, reason, clock):
    store = MemoryTreeStore({"Inscriptions": {"i1": {"apprenant": "u1", "formation": "c1"}}})
    result = cleanup.run_cleanup(store, clock=clock, **kwargs)
    prune = _phase(result, "prune")
    assert (prune.status, prune.details["reason"]) == ("disabled", reason)
    assert store.read("Inscriptions") is not None


def test_dry_run_leaves_store_untouched(clock):
    tree = {"Elearning": {"Cours": {"c1": {"title": "T", "modules": ["m1"]}}}, "Inscriptions": {"i": {"userId": "u"}}}
    store = MemoryTreeStore(tree)
    before = store.snapshot()
    result = cleanup.run_cleanup(store, clock=clock, dry_run=True)
    assert result.success is True and result.dry_run is True
    assert _phase(result, "modules").placeholders == 1
    assert store.snapshot() == before


def test_array_modules_become_keyed_map_with_placeholders(clock):
    store = MemoryTreeStore(
        {
            "Elearning": {
                "Cours": {
                    "c1": {
                        "titre": "T",
                        "modules": [
                            {"titre": "Intro", "evaluations": {"e1": {"titre": "Q"}}},
                            "m5",
                            "ghost",
                            None,
                            42,
                        ],
                    },
                    "c2": {"title": "Keyed", "modules": {"k1": {"title": "Kept"}}},
                },
                "Modules": {"m5": {"titre": "Stored", "evaluations": [{"titre": "Q2"}]}},
            }
        }
    )
    result = cleanup.run_cleanup(store, clock=clock, prune=False)
    modules = store.read("Elearning/Cours/c1/modules")
    assert set(modules) == {"m1_c1", "m5", "ghost", "m5_c1"}
    assert modules["m1_c1"]["order"] == 1 and modules["m1_c1"]["courseId"] == "c1"
    assert modules["m5"]["title"] == "Stored" and modules["m5"]["order"] == 2
    assert modules["ghost"]["placeholder"] is True and modules["ghost"]["title"] == "Module 3"
    assert modules["m5_c1"]["placeholder"] is True and modules["m5_c1"]["order"] == 5
    phase = _phase(result, "modules")
    assert phase.placeholders == 2
    assert len(phase.warnings) == 2
    assert store.read("Elearning/Cours/c2/modules") == {"k1": {"title": "Kept"}}

    assert store.read("Elearning/Evaluations/m1_c1/e1") == {"titre": "Q", "moduleId": "m1_c1", "courseId": "c1"}
    assert store.read("Elearning/Evaluations/m5/0") == {"titre": "Q2", "moduleId": "m5", "courseId": "c1"}


def test_per_user_evaluation_entries_are_regrouped_by_module(clock):
    store = MemoryTreeStore(
        {"Elearning": {"Evaluations": {"quiz1": {"u1": {"moduleId": "m1", "score": 90}, "u2": {"score": 10}}}}}
    )
    result = cleanup.run_cleanup(store, clock=clock)
    assert store.read("Elearning/Evaluations/m1/u1") == {"moduleId": "m1", "score": 90}
    assert _phase(result, "evaluations").details["relocated"] == 1


def test_progression_is_recomputed_from_module_details(clock):
    node = {
        "startDate": "2024-01-01",
        "m1": {"completed": True, "score": 80},
        "m2": {"completed": True, "bestScore": 60},
        "m3": {"completed": False, "score": 30},
    }
    store = MemoryTreeStore({"Elearning": {"Progression": {"u1": {"c1": node, "c2": {"progress": 5}}}}})
    cleanup.run_cleanup(store, clock=clock)
    rewritten = store.read("Elearning/Progression/u1/c1")
    assert rewritten["progress"] == 67
    assert rewritten["completed"] is False
    assert rewritten["score"] == 70
    assert rewritten["details"] == {
        "totalModules": 3,
        "completedModules": 2,
        "moduleScores": {"m1": 80, "m2": 60, "m3": 30},
    }
    assert rewritten["startDate"] == "2024-01-01"
    assert rewritten["lastUpdated"] == clock()
    assert not {"m1", "m2", "m3"} & set(rewritten)
    assert set(rewritten["modules"]) == {"m1", "m2", "m3"}
    assert store.read("Elearning/Progression/u1/c2") == {"progress": 5}


def test_progression_counts_flag_siblings_and_skips_zero_scores(clock):
    node = {"m1": {"completed": True, "score": 0}, "m2": {"completed": True, "bestScore": 0, "score": 40}, "m3": True}
    store = MemoryTreeStore({"Elearning": {"Progression": {"u1": {"c1": node}}}})
    cleanup.run_cleanup(store, clock=clock)
    rewritten = store.read("Elearning/Progression/u1/c1")
    assert rewritten["details"] == {"totalModules": 3, "completedModules": 2, "moduleScores": {"m2": 40}}
    assert rewritten["progress"] == 67
    assert "m3" not in rewritten
    assert rewritten["modules"]["m3"]["completed"] is False


def test_cleanup_is_repeatable(clock):
    store = MemoryTreeStore(
        {
            "Elearning": {
                "Cours": {"c1": {"title": "T", "modules": [{"title": "A"}], "enrollments": {"u1": {}}}},
                "Progression": {"u1": {"c1": {"m1": {"completed": True, "score": 50}}}},
            }
        }
    )
    cleanup.run_cleanup(store, clock=clock)
    snapshot = store.snapshot()
    cleanup.run_cleanup(store, clock=clock)
    assert store.snapshot() == snapshot


class FailingStore(MemoryTreeStore):
    def write(self, path: str, value: Any) -> None:
        if path.startswith("Elearning/Progression/"):
            raise StoreError("boom")
        super().write(path, value)


def test_store_failure_returns_unsuccessful_result(clock):
    store = FailingStore({"Elearning": {"Progression": {"u1": {"c1": {"m1": {"completed": True}}}}}, "Inscriptions": {"x": {}}})
    result = cleanup.run_cleanup(store, clock=clock)
    assert result.success is False
    assert result.message == "Cleanup error: boom"
    assert result.phases[-1].name == "progression"
    assert result.phases[-1].status == "failed"
