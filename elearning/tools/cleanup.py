"""Command line entry point and engine for the legacy-root cleanup pass.

Why:
    The legacy root (`Elearning` by default) is partially canonical. The
    cleanup centralizes what is still scattered there without running the
    full migration: enrollments, array-shaped course modules, embedded
    evaluations and per-module progression details.

Behaviour:
    - Steps run in order; each yields a `PhaseResult`.
    - Unusable legacy entries become placeholder records (`placeholder: true`)
      and are counted; nothing is silently dropped.
    - Pruning of obsolete legacy paths runs last and only when the earlier
      steps reported zero skipped and zero placeholder records, unless
      `force_prune` is set. It never runs in dry-run or with `prune=False`.
    - Any exception stops the run with `success=False`; earlier writes stay.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

import click

from ..repository.errors import LegacyShapeError
from ..repository.generic import Clock, TreeRepository
from ..schema.entities import PROGRESS_RESERVED_KEYS
from ..schema.standardize import is_missing, module_entries, normalize_module_progress, standardize, utc_now_iso
from ..services.progress import completion_percent
from ..store import paths
from ..store.config import LEGACY_ROOT_DEFAULT, load_env_file, load_store_config
from ..store.memory import MemoryTreeStore
from ..store.ports import TreeStore
from ..store.wiring import build_store
from .reporting import (
    LogSink,
    PhaseResult,
    RunLog,
    RunResult,
    build_report,
    configure_logging,
    default_report_path,
    write_report,
)

_log = logging.getLogger("elearning.tools.cleanup")


def legacy_enrollment_paths(legacy_root: str) -> Tuple[str, ...]:
    return ("enrollments", "Inscriptions", paths.join(legacy_root, "Inscriptions"))


def obsolete_paths(legacy_root: str) -> Tuple[str, ...]:
    """Locations deleted by the prune step once their content has been lifted."""
    return legacy_enrollment_paths(legacy_root)


def _children(node: Any) -> Iterator[Tuple[str, Any]]:
    if isinstance(node, Mapping):
        for key, value in node.items():
            yield str(key), value
    elif isinstance(node, list):
        for idx, value in enumerate(node):
            if value is not None:
                yield str(idx), value


def _module_record(course_id: str, module_id: str, index: int, data: Mapping[str, Any], stamp: str) -> Dict[str, Any]:
    record = standardize("module", {**data, "id": module_id, "courseId": course_id, "order": index + 1}, now=stamp)
    if data.get("evaluations"):
        # lifted by the evaluations step
        record["evaluations"] = data["evaluations"]
    return record


def _placeholder_module(course_id: str, module_id: str, index: int, stamp: str) -> Dict[str, Any]:
    return standardize(
        "module",
        {
            "id": module_id,
            "courseId": course_id,
            "order": index + 1,
            "title": f"Module {index + 1}",
            "description": f"Placeholder for unresolved module entry {index + 1}",
            "placeholder": True,
        },
        now=stamp,
    )


class CleanupEngine:
    """Step-by-step reconciliation of the legacy root."""

    def __init__(
        self,
        store: TreeStore,
        *,
        legacy_root: str = LEGACY_ROOT_DEFAULT,
        clock: Optional[Clock] = None,
        log: Optional[RunLog] = None,
    ) -> None:
        self.store = store
        self.legacy_root = paths.join(legacy_root)
        self.legacy = TreeRepository(store, root=self.legacy_root, clock=clock or utc_now_iso)
        self.log = log or RunLog(_log)
        self.phases: List[PhaseResult] = []
        self.stamp = ""

    def _write_enrollment(self, record: Dict[str, Any]) -> None:
        user_key, course_key = paths.safe_key(record["userId"]), paths.safe_key(record["courseId"])
        self.legacy.write(record, "Enrollments", "byCourse", course_key, user_key)
        self.legacy.write(record, "Enrollments", "byUser", user_key, course_key)

    # --- steps -------------------------------------------------------------

    def lift_course_enrollments(self, phase: PhaseResult) -> None:
        courses = self.legacy.read("Cours")
        for course_id, course in _children(courses):
            if not isinstance(course, Mapping):
                continue
            for user_id, data in _children(course.get("enrollments")):
                if not data:
                    continue
                data = data if isinstance(data, Mapping) else {}
                record = standardize(
                    "enrollment",
                    {
                        **data,
                        "userId": user_id,
                        "courseId": course_id,
                        "courseName": data.get("courseName") or course.get("title") or course.get("titre"),
                    },
                    now=self.stamp,
                )
                self._write_enrollment(record)
                phase.written += 1
        self.log(f"Lifted {phase.written} course-embedded enrollments")

    def lift_legacy_enrollments(self, phase: PhaseResult) -> None:
        for source in legacy_enrollment_paths(self.legacy_root):
            for key, data in _children(self.store.read(source)):
                origin = paths.join(source, key)
                if not isinstance(data, Mapping):
                    phase.skipped += 1
                    phase.warn(f"{origin}: not an enrollment object")
                    continue
                record = standardize("enrollment", data, now=self.stamp)
                user_id, course_id = record["userId"], record["courseId"]
                if is_missing(user_id) or is_missing(course_id):
                    phase.skipped += 1
                    phase.warn(f"{origin}: missing user or course reference")
                    continue
                record["userId"], record["courseId"] = str(user_id), str(course_id)
                self._write_enrollment(record)
                phase.written += 1
        self.log(f"Lifted {phase.written} legacy enrollments (skipped {phase.skipped})")

    def _lift_module_entry(self, course_id: str, index: int, entry: Any) -> Tuple[str, Dict[str, Any]]:
        origin = self.legacy.path("Cours", course_id, "modules", index)
        if isinstance(entry, Mapping):
            module_id = str(entry.get("id") or f"m{index + 1}_{course_id}")
            return module_id, _module_record(course_id, module_id, index, entry, self.stamp)
        if isinstance(entry, str) and entry:
            stored = self.legacy.read("Modules", entry)
            if not isinstance(stored, Mapping):
                raise LegacyShapeError(origin, entry, f"module {entry} not found in Modules")
            return entry, _module_record(course_id, entry, index, stored, self.stamp)
        raise LegacyShapeError(origin, entry, f"unsupported module entry of type {type(entry).__name__}")

    def standardize_course_modules(self, phase: PhaseResult) -> None:
        courses = self.legacy.read("Cours")
        converted = 0
        for course_id, course in _children(courses):
            if not isinstance(course, Mapping) or not isinstance(course.get("modules"), list):
                continue
            modules: Dict[str, Dict[str, Any]] = {}
            for index, entry in enumerate(course["modules"]):
                if entry is None:
                    continue
                try:
                    module_id, record = self._lift_module_entry(course_id, index, entry)
                except LegacyShapeError as exc:
                    module_id = entry if isinstance(entry, str) and entry else f"m{index + 1}_{course_id}"
                    record = _placeholder_module(course_id, module_id, index, self.stamp)
                    phase.placeholders += 1
                    phase.warn(f"{exc}; placeholder {module_id} written")
                modules[paths.safe_key(module_id)] = record
                phase.written += 1
            self.legacy.write(modules, "Cours", course_id, "modules")
            converted += 1
        phase.details["courses_converted"] = converted
        self.log(f"Converted modules of {converted} courses ({phase.placeholders} placeholders)")

    def _lift_evaluations(self, phase: PhaseResult, module_id: str, module: Mapping[str, Any], course_id: Any) -> None:
        for eval_key, data in _children(module.get("evaluations")):
            if not isinstance(data, Mapping):
                phase.skipped += 1
                phase.warn(f"evaluation {eval_key} of module {module_id}: not an object")
                continue
            eval_id = str(data.get("id") or eval_key)
            record = {**data, "moduleId": module_id}
            if not is_missing(course_id):
                record["courseId"] = course_id
            self.legacy.write(record, "Evaluations", paths.safe_key(module_id), paths.safe_key(eval_id))
            phase.written += 1

    def centralize_evaluations(self, phase: PhaseResult) -> None:
        for module_id, module in _children(self.legacy.read("Modules")):
            if isinstance(module, Mapping):
                self._lift_evaluations(phase, module_id, module, module.get("courseId") or module.get("cours"))
        # course-embedded copies know their course and win
        for course_id, course in _children(self.legacy.read("Cours")):
            if not isinstance(course, Mapping):
                continue
            for module_id, module in _children(course.get("modules")):
                if isinstance(module, Mapping):
                    self._lift_evaluations(phase, str(module.get("id") or module_id), module, course_id)
        relocated = 0
        for group_key, group in _children(self.legacy.read("Evaluations")):
            if not isinstance(group, Mapping):
                continue
            for user_id, data in group.items():
                if not isinstance(data, Mapping) or is_missing(data.get("moduleId")):
                    continue
                module_key = paths.safe_key(data["moduleId"])
                if module_key == group_key:
                    continue
                self.legacy.write(dict(data), "Evaluations", module_key, user_id)
                relocated += 1
        phase.written += relocated
        phase.details["relocated"] = relocated
        self.log(f"Centralized {phase.written} evaluations")

    def standardize_progression(self, phase: PhaseResult) -> None:
        for user_id, courses in _children(self.legacy.read("Progression")):
            if not isinstance(courses, Mapping):
                continue
            for course_id, node in courses.items():
                if not isinstance(node, Mapping):
                    continue
                entries = module_entries(node)
                if not entries:
                    continue
                self.legacy.write(self._recomputed(node, entries), "Progression", user_id, course_id)
                phase.written += 1
        self.log(f"Recomputed {phase.written} progression nodes")

    def _recomputed(self, node: Mapping[str, Any], entries: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
        modules = {mid: normalize_module_progress(mid, entry, self.stamp) for mid, entry in entries.items()}
        done = [entry for entry in entries.values() if entry.get("completed") is True]
        total_score = 0.0
        for entry in done:
            score = entry.get("score")
            if is_missing(score):
                score = entry.get("bestScore")
            if isinstance(score, (int, float)) and not isinstance(score, bool):
                total_score += score
        module_scores = {}
        for mid, entry in entries.items():
            value = entry.get("bestScore") or entry.get("score")
            if value:
                module_scores[mid] = value
        rewritten = {key: value for key, value in node.items() if key in PROGRESS_RESERVED_KEYS}
        rewritten.update(
            {
                "modules": modules,
                "completed": len(done) == len(entries),
                "progress": completion_percent(len(done), len(entries)),
                "score": total_score / len(done) if done else 0,
                "lastUpdated": self.stamp,
                "details": {
                    "totalModules": len(entries),
                    "completedModules": len(done),
                    "moduleScores": module_scores,
                },
            }
        )
        return rewritten

    def prune(self, phase: PhaseResult, *, enabled: bool, force: bool, dry_run: bool) -> None:
        targets = obsolete_paths(self.legacy_root)
        phase.details["paths"] = list(targets)
        if dry_run or not enabled:
            phase.status = "disabled"
            phase.details["reason"] = "dry_run" if dry_run else "prune disabled"
            self.log("Prune step disabled; obsolete paths kept")
            return
        skipped = sum(p.skipped for p in self.phases if p is not phase)
        placeholders = sum(p.placeholders for p in self.phases if p is not phase)
        if (skipped or placeholders) and not force:
            phase.status = "refused"
            phase.details.update({"skipped": skipped, "placeholders": placeholders})
            self.log.warning(
                f"Prune refused: {skipped} skipped and {placeholders} placeholder records. "
                "Review the report and re-run with --force-prune to delete obsolete paths."
            )
            return
        for target in targets:
            if self.store.read(target) is not None:
                self.store.delete(target)
                phase.written += 1
                self.log(f"Deleted obsolete path {target}")

    # --- orchestration -----------------------------------------------------

    def run(self, *, prune: bool = True, force_prune: bool = False, dry_run: bool = False) -> List[PhaseResult]:
        self.stamp = self.legacy.clock()
        steps = (
            ("course_enrollments", self.lift_course_enrollments),
            ("legacy_enrollments", self.lift_legacy_enrollments),
            ("modules", self.standardize_course_modules),
            ("evaluations", self.centralize_evaluations),
            ("progression", self.standardize_progression),
        )
        for name, step in steps:
            phase = PhaseResult(name)
            self.phases.append(phase)
            self.log(f"Step {name}")
            try:
                step(phase)
            except Exception:
                phase.status = "failed"
                raise
        phase = PhaseResult("prune")
        self.phases.append(phase)
        try:
            self.prune(phase, enabled=prune, force=force_prune, dry_run=dry_run)
        except Exception:
            phase.status = "failed"
            raise
        return self.phases


def run_cleanup(
    store: TreeStore,
    *,
    log_sink: Optional[LogSink] = None,
    prune: bool = True,
    force_prune: bool = False,
    dry_run: bool = False,
    legacy_root: str = LEGACY_ROOT_DEFAULT,
    clock: Optional[Clock] = None,
) -> RunResult:
    """Run every cleanup step and report `{success, message}`; never raises."""
    log = RunLog(_log, log_sink)
    log(f"Starting database cleanup ({'DRY-RUN' if dry_run else 'LIVE'})")
    engine: Optional[CleanupEngine] = None
    try:
        target = MemoryTreeStore(store.read("") or {}) if dry_run else store
        engine = CleanupEngine(target, legacy_root=legacy_root, clock=clock, log=log)
        engine.run(prune=prune, force_prune=force_prune, dry_run=dry_run)
    except Exception as exc:
        _log.debug("cleanup aborted", exc_info=True)
        log.warning(f"Cleanup failed: {exc}")
        phases = engine.phases if engine is not None else []
        return RunResult(False, f"Cleanup error: {exc}", phases, dry_run)
    message = "Database cleanup completed successfully"
    if engine.phases[-1].status == "refused":
        message = "Database cleanup completed; pruning refused (re-run with --force-prune after review)"
    log(message)
    return RunResult(True, message, engine.phases, dry_run)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--dry-run", is_flag=True, default=False, help="Run against an in-memory snapshot; nothing is written.")
@click.option("--no-prune", is_flag=True, default=False, help="Keep obsolete legacy paths.")
@click.option(
    "--force-prune",
    is_flag=True,
    default=False,
    help="Delete obsolete legacy paths even when records were skipped or replaced by placeholders.",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
    help="Write a JSON run report to this path (default: reports/cleanup_<timestamp>.json).",
)
@click.option("--no-report", is_flag=True, default=False, help="Do not write a JSON report.")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli(dry_run: bool, no_prune: bool, force_prune: bool, report: Optional[Path], no_report: bool, verbose: bool) -> None:
    """Reconcile the legacy root in place and prune obsolete paths."""
    load_env_file()
    configure_logging(verbose)
    try:
        config = load_store_config()
    except ValueError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        raise click.Abort() from exc
    store = build_store(config)
    started_at = datetime.now(timezone.utc).isoformat()
    result = run_cleanup(
        store,
        log_sink=click.echo,
        prune=not no_prune,
        force_prune=force_prune,
        dry_run=dry_run,
        legacy_root=config.legacy_root,
    )
    if not no_report:
        path = write_report(report or default_report_path("cleanup"), build_report("cleanup", result, started_at=started_at))
        click.echo(f"Report written to {path}")
    if not result.success:
        click.echo(result.message, err=True)
        raise click.Abort()


if __name__ == "__main__":  # pragma: no cover
    cli()
