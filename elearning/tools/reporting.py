"""
Phase bookkeeping, operator log stream and JSON run reports shared by the
migration and cleanup commands.

Log stream:
    Engines never print. Every progress line goes through a `RunLog`, which
    forwards it to the module logger and to an optional sink callable
    (`click.echo` in the CLI, a list's `append` in tests, a UI console in a
    host application).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

LogSink = Callable[[str], None]


@dataclass
class PhaseResult:
    name: str
    status: str = "ok"  # "ok" | "warning" | "failed" | "refused" | "disabled"
    written: int = 0
    skipped: int = 0
    placeholders: int = 0
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def warn(self, message: str) -> None:
        self.warnings.append(message)
        if self.status == "ok":
            self.status = "warning"


@dataclass
class RunResult:
    success: bool
    message: str
    phases: List[PhaseResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def skipped(self) -> int:
        return sum(p.skipped for p in self.phases)

    @property
    def placeholders(self) -> int:
        return sum(p.placeholders for p in self.phases)


def phase_to_dict(result: PhaseResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "name": result.name,
        "status": result.status,
        "written": result.written,
        "skipped": result.skipped,
        "placeholders": result.placeholders,
    }
    if result.details:
        data["details"] = result.details
    if result.warnings:
        data["warnings"] = result.warnings
    return data


class RunLog:
    """Forward progress lines to a logger and an optional sink."""

    def __init__(self, logger: logging.Logger, sink: Optional[LogSink] = None) -> None:
        self.logger = logger
        self.sink = sink

    def __call__(self, message: str, *, level: int = logging.INFO) -> None:
        self.logger.log(level, message)
        if self.sink is not None:
            self.sink(message)

    def warning(self, message: str) -> None:
        self(message, level=logging.WARNING)


def configure_logging(verbose: bool) -> None:
    # progress lines already reach the operator through the sink
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def build_report(kind: str, result: RunResult, *, started_at: str) -> Dict[str, Any]:
    return {
        "kind": kind,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "status": "success" if result.success else "failed",
        "dry_run": result.dry_run,
        "message": result.message,
        "phases": [phase_to_dict(p) for p in result.phases],
        "totals": {
            "written": sum(p.written for p in result.phases),
            "skipped": result.skipped,
            "placeholders": result.placeholders,
            "warnings": sum(len(p.warnings) for p in result.phases),
        },
    }


def write_report(path: Path, report: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(report, fh, indent=2)
    return path


def default_report_path(kind: str) -> Path:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return Path("reports") / f"{kind}_{stamp}.json"


__all__ = [
    "LogSink",
    "PhaseResult",
    "RunResult",
    "RunLog",
    "phase_to_dict",
    "configure_logging",
    "build_report",
    "write_report",
    "default_report_path",
]
