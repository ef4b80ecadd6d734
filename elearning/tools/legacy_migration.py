"""Command line entry point and engine for migrating legacy tree data.

Why:
    Records were written over the years under several naming conventions
    (`Elearning/Formateurs`, `Formations`, `Inscriptions`, ...). The migration
    scans every known legacy location, standardizes each record and rewrites
    the canonical layout under the canonical root, rebuilding the relations
    between users, courses, modules, evaluations, enrollments and progress.

Behaviour:
    - Stages run strictly in dependency order:
      users -> courses -> modules -> evaluations -> enrollments -> progress -> feedback
    - Each stage resets its canonical node, then writes unconditionally.
      Invalid records are still written and reported as warnings.
    - A failing stage halts the run; earlier stages stay written.
    - All defaulted timestamps of a run share one clock reading, so two runs
      with the same clock produce identical canonical trees.
    - Dry-run executes against an in-memory snapshot of the whole tree.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import click

from ..repository import layout
from ..repository.generic import Clock, TreeRepository
from ..schema.entities import ROLES
from ..schema.standardize import is_missing, satellite, standardize, utc_now_iso
from ..schema.validation import validate
from ..services.relations import append_unique
from ..store import paths
from ..store.config import CANONICAL_ROOT_DEFAULT, load_env_file, load_store_config
from ..store.memory import MemoryTreeStore
from ..store.ports import TreeStore
from ..store.wiring import build_store
from .legacy_paths import BY_COURSE, BY_USER, FLAT, GROUPED, MIGRATION_SOURCES, NESTED, LegacyPathSpec
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

_log = logging.getLogger("elearning.tools.migration")

STAGES = ("users", "courses", "modules", "evaluations", "enrollments", "progress", "feedback")

PLACEHOLDER_TITLES = {
    "course": "Course {id}",
    "module": "Module {id}",
    "evaluation": "Evaluation {id}",
}


@dataclass(frozen=True)
class LegacyItem:
    source: str
    key: str
    record: Any
    parent: Optional[str] = None
    position: Optional[int] = None


def _is_group(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(isinstance(v, Mapping) for v in value.values())


def iter_legacy(store: TreeStore, spec: LegacyPathSpec) -> Iterator[LegacyItem]:
    """Yield the candidate records found at one legacy location."""
    node = store.read(spec.path)
    if node is None:
        return
    if isinstance(node, list):
        node = {str(i): v for i, v in enumerate(node) if v is not None}
    if not isinstance(node, Mapping):
        _log.debug("legacy path %s holds a scalar; ignored", spec.path)
        return
    for key, value in node.items():
        key = str(key)
        if key in spec.exclude:
            continue
        source = paths.join(spec.path, key)
        if spec.shape == FLAT:
            yield LegacyItem(source, key, value)
        elif spec.shape == GROUPED:
            if _is_group(value):
                for child_key, child in value.items():
                    yield LegacyItem(paths.join(source, child_key), str(child_key), child, parent=key)
            else:
                yield LegacyItem(source, key, value)
        elif spec.shape in (BY_USER, BY_COURSE):
            if not isinstance(value, Mapping):
                yield LegacyItem(source, key, value)
                continue
            for child_key, child in value.items():
                yield LegacyItem(paths.join(source, child_key), str(child_key), child, parent=key)
        elif spec.shape == NESTED:
            if not isinstance(value, Mapping):
                continue
            children = value.get(spec.child_field or "")
            yield from _iter_nested(source, key, children, prefix=(spec.child_field or "x")[0])


def _iter_nested(source: str, parent: str, children: Any, *, prefix: str) -> Iterator[LegacyItem]:
    if isinstance(children, Mapping):
        for child_key, child in children.items():
            if isinstance(child, (bool, str)):
                # membership flag or reference; the record lives elsewhere
                continue
            yield LegacyItem(paths.join(source, child_key), str(child_key), child, parent=parent)
    elif isinstance(children, list):
        for idx, child in enumerate(children):
            if child is None or isinstance(child, str):
                continue
            key = f"{prefix}{idx + 1}_{parent}"
            if isinstance(child, Mapping) and not is_missing(child.get("id")):
                key = paths.safe_key(child["id"])
            yield LegacyItem(paths.join(source, str(idx)), key, child, parent=parent, position=idx)


def normalize_module_order(modules: Iterable[Dict[str, Any]]) -> int:
    """Make `order` unique per course; returns how many modules were renumbered.

    Modules keep a positive order unless an earlier module of the same course
    already holds it; the others take the next free positions in insertion order.
    """
    per_course: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for module in modules:
        per_course[str(module.get("courseId") or "")].append(module)
    changed = 0
    for items in per_course.values():
        taken: set = set()
        pending: List[Dict[str, Any]] = []
        for module in items:
            order = module.get("order")
            if isinstance(order, (int, float)) and not isinstance(order, bool) and order > 0 and order not in taken:
                taken.add(order)
            else:
                pending.append(module)
        next_pos = 1
        for module in pending:
            while next_pos in taken:
                next_pos += 1
            module["order"] = next_pos
            taken.add(next_pos)
            next_pos += 1
            changed += 1
    return changed


class MigrationEngine:
    """Stage-by-stage rewrite of legacy locations into the canonical layout."""

    def __init__(
        self,
        store: TreeStore,
        *,
        root: str = CANONICAL_ROOT_DEFAULT,
        sources: Mapping[str, Sequence[LegacyPathSpec]] = MIGRATION_SOURCES,
        clock: Optional[Clock] = None,
        log: Optional[RunLog] = None,
    ) -> None:
        self.store = store
        self.repo = TreeRepository(store, root=root, clock=clock or utc_now_iso)
        self.sources = sources
        self.log = log or RunLog(_log)
        self.phases: List[PhaseResult] = []
        self.stamp = ""

    # --- helpers -----------------------------------------------------------

    def _items(self, kind: str) -> List[Tuple[LegacyPathSpec, LegacyItem]]:
        found: List[Tuple[LegacyPathSpec, LegacyItem]] = []
        for spec in self.sources.get(kind, ()):
            found.extend((spec, item) for item in iter_legacy(self.store, spec))
        return found

    def _reset(self, *nodes: str) -> None:
        for node in nodes:
            self.repo.write({}, node)

    def _check(self, kind: str, key: str, record: Mapping[str, Any], phase: PhaseResult) -> None:
        result = validate(kind, record)
        if not result.is_valid:
            phase.warn(f"{kind} {key}: {'; '.join(result.errors)}")

    def _titled(self, kind: str, key: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if not record.get("title"):
            record["title"] = PLACEHOLDER_TITLES[kind].format(id=key)
        return record

    def _shaped(self, kind: str, spec: LegacyPathSpec, item: LegacyItem) -> Dict[str, Any]:
        """Standardize a module or evaluation, filling parent and position from its location."""
        record = standardize(kind, {**spec.apply(item.record), "id": item.key}, now=self.stamp)
        if spec.parent_field and item.parent is not None and is_missing(record.get(spec.parent_field)):
            record[spec.parent_field] = item.parent
        if kind == "module" and item.position is not None and not record.get("order"):
            record["order"] = item.position + 1
        return self._titled(kind, item.key, record)

    def _skip(self, phase: PhaseResult, item: LegacyItem, reason: str) -> None:
        phase.skipped += 1
        _log.debug("skip %s: %s", item.source, reason)

    # --- stages ------------------------------------------------------------

    def migrate_users(self, phase: PhaseResult) -> None:
        self._reset(layout.USERS, layout.STUDENTS, layout.INSTRUCTORS, layout.ADMINS)
        items = self._items("user")
        self.log(f"Phase users: {len(items)} items")
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            raw = spec.apply(item.record)
            user = standardize("user", {**raw, "id": item.key}, now=self.stamp)
            if user["role"] not in ROLES:
                phase.warn(f"user {item.key}: unknown role {user['role']!r}; stored as student")
                user["role"] = "student"
            self._check("user", item.key, user, phase)
            self.repo.write(user, layout.USERS, item.key)
            for role, node in layout.SATELLITE_BY_ROLE.items():
                if role != user["role"]:
                    self.repo.remove(node, item.key)
            self.repo.write(satellite(user["role"], item.key, raw), layout.SATELLITE_BY_ROLE[user["role"]], item.key)
            phase.written += 1

    def migrate_courses(self, phase: PhaseResult) -> None:
        self._reset(layout.COURSES)
        items = self._items("course")
        self.log(f"Phase courses: {len(items)} items")
        attached = 0
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            raw = spec.apply(item.record)
            course = self._titled("course", item.key, standardize("course", {**raw, "id": item.key}, now=self.stamp))
            self._check("course", item.key, course, phase)
            self.repo.write(course, layout.COURSES, item.key)
            phase.written += 1
            instructor_id = course.get("instructorId")
            if instructor_id and append_unique(
                self.repo, paths.join(layout.INSTRUCTORS, paths.safe_key(instructor_id)), "courses", item.key
            ):
                attached += 1
        phase.details["instructor_links"] = attached

    def migrate_modules(self, phase: PhaseResult) -> None:
        self._reset(layout.MODULES)
        items = self._items("module")
        self.log(f"Phase modules: {len(items)} items")
        collected: Dict[str, Dict[str, Any]] = {}
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            collected[item.key] = self._shaped("module", spec, item)
        phase.details["reordered"] = normalize_module_order(collected.values())
        orphans = 0
        for module_id, module in collected.items():
            self._check("module", module_id, module, phase)
            self.repo.write(module, layout.MODULES, module_id)
            phase.written += 1
            course_id = str(module.get("courseId") or "")
            if course_id and self.repo.read(layout.COURSES, course_id) is not None:
                self.repo.write(True, layout.COURSES, course_id, "modules", module_id)
            else:
                orphans += 1
                phase.warn(f"module {module_id}: course {course_id or '?'} not found; membership not recorded")
        phase.details["orphans"] = orphans

    def migrate_evaluations(self, phase: PhaseResult) -> None:
        self._reset(layout.EVALUATIONS)
        items = self._items("evaluation")
        self.log(f"Phase evaluations: {len(items)} items")
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            evaluation = self._shaped("evaluation", spec, item)
            self._check("evaluation", item.key, evaluation, phase)
            module_id = evaluation.get("moduleId")
            if module_id and self.repo.read(layout.MODULES, module_id) is None:
                phase.warn(f"evaluation {item.key}: module {module_id} not found")
            self.repo.write(evaluation, layout.EVALUATIONS, item.key)
            phase.written += 1

    def migrate_enrollments(self, phase: PhaseResult) -> None:
        self._reset(layout.ENROLLMENTS)
        items = self._items("enrollment")
        self.log(f"Phase enrollments: {len(items)} items")
        linked = 0
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            raw = spec.apply(item.record)
            if spec.shape == BY_USER:
                raw = {**raw, "userId": item.parent, "courseId": item.key}
            elif spec.shape == BY_COURSE:
                raw = {**raw, "userId": item.key, "courseId": item.parent}
            record = standardize("enrollment", raw, now=self.stamp)
            user_id, course_id = str(record["userId"] or ""), str(record["courseId"] or "")
            if not user_id or not course_id:
                self._skip(phase, item, "missing user or course reference")
                continue
            record["userId"], record["courseId"] = user_id, course_id
            self._check("enrollment", f"{course_id}/{user_id}", record, phase)
            user_key, course_key = paths.safe_key(user_id), paths.safe_key(course_id)
            self.repo.write(record, layout.ENROLLMENTS_BY_COURSE, course_key, user_key)
            self.repo.write(record, layout.ENROLLMENTS_BY_USER, user_key, course_key)
            if append_unique(self.repo, paths.join(layout.STUDENTS, user_key), "enrollments", course_id):
                linked += 1
            phase.written += 1
        phase.details["student_links"] = linked

    def migrate_progress(self, phase: PhaseResult) -> None:
        self._reset(layout.PROGRESS)
        items = self._items("progress")
        self.log(f"Phase progress: {len(items)} items")
        module_entries = 0
        for spec, item in items:
            if not isinstance(item.record, Mapping) or item.parent is None:
                self._skip(phase, item, "not a per-course progress object")
                continue
            raw = spec.apply(item.record)
            record = standardize("progress", {**raw, "userId": item.parent, "courseId": item.key}, now=self.stamp)
            self._check("progress", f"{item.parent}/{item.key}", record, phase)
            self.repo.write(record, layout.PROGRESS, item.parent, item.key)
            module_entries += len(record["modules"])
            phase.written += 1
        phase.details["module_entries"] = module_entries

    def migrate_feedback(self, phase: PhaseResult) -> None:
        self._reset(layout.FEEDBACK)
        items = self._items("feedback")
        self.log(f"Phase feedback: {len(items)} items")
        for spec, item in items:
            if not isinstance(item.record, Mapping):
                self._skip(phase, item, "not an object")
                continue
            raw = spec.apply(item.record)
            record = standardize("feedback", {**raw, "id": item.key}, now=self.stamp)
            self._check("feedback", item.key, record, phase)
            self.repo.write(record, layout.FEEDBACK, item.key)
            phase.written += 1

    # --- orchestration -----------------------------------------------------

    def _stage(self, name: str) -> Callable[[PhaseResult], None]:
        return getattr(self, f"migrate_{name}")

    def run(self) -> List[PhaseResult]:
        """Execute every stage in order; re-raises the first stage failure."""
        self.stamp = self.repo.clock()
        for name in STAGES:
            phase = PhaseResult(name)
            self.phases.append(phase)
            try:
                self._stage(name)(phase)
            except Exception:
                phase.status = "failed"
                raise
            self.log(
                f"Processed {phase.written} {name} "
                f"(skipped {phase.skipped}, warnings {len(phase.warnings)})"
            )
        return self.phases


def run_migration(
    store: TreeStore,
    *,
    log_sink: Optional[LogSink] = None,
    clock: Optional[Clock] = None,
    root: str = CANONICAL_ROOT_DEFAULT,
    sources: Mapping[str, Sequence[LegacyPathSpec]] = MIGRATION_SOURCES,
    dry_run: bool = False,
) -> RunResult:
    """Run the whole migration and report `{success, message}`; never raises."""
    log = RunLog(_log, log_sink)
    log(f"Starting legacy migration ({'DRY-RUN' if dry_run else 'LIVE'})")
    engine: Optional[MigrationEngine] = None
    try:
        target = MemoryTreeStore(store.read("") or {}) if dry_run else store
        engine = MigrationEngine(target, root=root, sources=sources, clock=clock, log=log)
        engine.run()
    except Exception as exc:
        _log.debug("migration aborted", exc_info=True)
        log.warning(f"Migration failed: {exc}")
        phases = engine.phases if engine is not None else []
        return RunResult(False, f"Migration error: {exc}", phases, dry_run)
    if dry_run:
        log("Dry-run complete; no writes were committed.")
    else:
        log("Migration finished successfully.")
    return RunResult(True, "Database migration completed successfully", engine.phases, dry_run)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Run against an in-memory snapshot of the tree; nothing is written.",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    required=False,
    help="Write a JSON run report to this path (default: reports/migration_<timestamp>.json).",
)
@click.option("--no-report", is_flag=True, default=False, help="Do not write a JSON report.")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli(dry_run: bool, report: Optional[Path], no_report: bool, verbose: bool) -> None:
    """Migrate every legacy location into the canonical layout.

    Parameters:
        dry_run: Execute against an in-memory copy and only report the outcome.
        report: Destination of the JSON report.
    Behaviour:
        - Reads store settings from the environment (and `.env`).
        - Echoes the progress stream live; exits non-zero on failure.
    """
    load_env_file()
    configure_logging(verbose)
    try:
        config = load_store_config()
    except ValueError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        raise click.Abort() from exc
    store = build_store(config)
    started_at = datetime.now(timezone.utc).isoformat()
    result = run_migration(store, log_sink=click.echo, root=config.canonical_root, dry_run=dry_run)
    if not no_report:
        path = write_report(report or default_report_path("migration"), build_report("migration", result, started_at=started_at))
        click.echo(f"Report written to {path}")
    if not result.success:
        click.echo(result.message, err=True)
        raise click.Abort()


if __name__ == "__main__":  # pragma: no cover
    cli()
