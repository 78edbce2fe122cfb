"""Run statistics and JSON/YAML report generation.

A Reporter subscribes to an orchestrator's events while the run is in
progress and produces a report once it has finished:

    {"report": {"generated_at": ..., "summary": {...},
                "tests": [...], "failures": [...], "errors": [...]}}
"""

from __future__ import annotations

import datetime
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from suitegraph.execution.constants import Result, RunnableKind
from suitegraph.execution.orchestrator import (
    FINISH,
    RUNNABLE_ERROR,
    RUNNABLE_FINISH,
    START,
    Orchestrator,
)
from suitegraph.execution.runnables import Runnable

# Results of a hook that make it worth reporting
HOOK_FAILURE_RESULTS = frozenset({Result.FAILURE, Result.TIMEOUT})


@dataclass
class RunStats:
    """Counters for test runnables (hooks and barriers are not counted)."""

    tests: int = 0
    passes: int = 0
    failures: int = 0
    timeouts: int = 0
    hook_failures: int = 0
    skipped: int = 0
    duration: float = 0.0


class Reporter:
    """Collects runnable outcomes from an orchestrator and writes reports."""

    def __init__(self, orchestrator: Orchestrator) -> None:
        self.orchestrator = orchestrator
        self.stats = RunStats()
        self.failures: list[Runnable] = []
        self.errors: list[tuple[Runnable, BaseException]] = []
        self.finished = False
        self._started_at: float | None = None

        orchestrator.on(START, self._on_start)
        orchestrator.on(RUNNABLE_FINISH, self._on_runnable_finish)
        orchestrator.on(RUNNABLE_ERROR, self._on_runnable_error)
        orchestrator.on(FINISH, self._on_finish)

    def _on_start(self) -> None:
        self._started_at = time.monotonic()

    def _on_runnable_finish(self, runnable: Runnable) -> None:
        if runnable.kind is RunnableKind.TEST:
            self.stats.tests += 1
            if runnable.result is Result.SUCCESS:
                self.stats.passes += 1
            elif runnable.result is Result.FAILURE:
                self.stats.failures += 1
            elif runnable.result is Result.TIMEOUT:
                self.stats.timeouts += 1
            elif runnable.result is Result.HOOK_FAILURE:
                self.stats.hook_failures += 1
            elif runnable.result is Result.SKIPPED:
                self.stats.skipped += 1

            if runnable.result not in (Result.SUCCESS, Result.SKIPPED):
                self.failures.append(runnable)
        elif runnable.is_hook and runnable.result in HOOK_FAILURE_RESULTS:
            self.failures.append(runnable)

    def _on_runnable_error(self, runnable: Runnable, error: BaseException) -> None:
        self.errors.append((runnable, error))

    def _on_finish(self) -> None:
        if self._started_at is not None:
            self.stats.duration = time.monotonic() - self._started_at
        self.finished = True

    def generate_report(self) -> dict[str, Any]:
        """Generate the report data structure.

        Returns:
            Dictionary representing the full report, suitable for JSON or
            YAML serialization.
        """
        now = datetime.datetime.now(tz=datetime.timezone.utc).isoformat()
        tests = [
            self._format_runnable(r)
            for r in self.orchestrator.all_runnables
            if r.kind is RunnableKind.TEST
        ]
        return {
            "report": {
                "generated_at": now,
                "summary": self._compute_summary(),
                "tests": tests,
                "failures": [self._format_runnable(r) for r in self.failures],
                "errors": [
                    {"id": r.id, "title": r.full_title(), "error": str(e)}
                    for r, e in self.errors
                ],
            }
        }

    def write_report(self, path: Path | None = None) -> Path:
        """Write the report as a JSON file.

        Args:
            path: File path to write the JSON report to. Defaults to the
                orchestrator config's ``report_path``.

        Returns:
            The path written.

        Raises:
            ValueError: If no path is given and none is configured.
        """
        if path is None:
            path = self.orchestrator.config.report_path
        if path is None:
            raise ValueError("No report path specified")
        report = self.generate_report()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(report, f, indent=2)
        return path

    def write_yaml(self, path: Path) -> None:
        """Write the report as a YAML file.

        Args:
            path: File path to write the YAML report to.
        """
        report = self.generate_report()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(
                report,
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

    def _compute_summary(self) -> dict[str, Any]:
        summary = asdict(self.stats)
        summary["duration"] = round(self.stats.duration, 3)
        summary["finished"] = self.finished
        return summary

    def _format_runnable(self, runnable: Runnable) -> dict[str, Any]:
        """Format a runnable for the report.

        Args:
            runnable: A registered runnable, in any state.

        Returns:
            Dictionary with the runnable's identity, outcome and timing.
        """
        entry: dict[str, Any] = {
            "id": runnable.id,
            "title": runnable.full_title(),
            "kind": runnable.kind.value,
            "state": runnable.state.value,
            "result": runnable.result.value if runnable.result is not None else None,
            "duration_seconds": round(runnable.duration or 0.0, 3),
        }
        if runnable.error is not None:
            entry["error"] = str(runnable.error)
        if runnable.extra_errors:
            entry["extra_errors"] = [str(e) for e in runnable.extra_errors]
        return entry
