"""Step sequencing for capture and restore runs.

A ``Pipeline`` is a fixed, ordered list of named steps. ``RunContext`` walks
it once per run: each position is either skipped (selection filter or resume
point) or executed, and every position produces exactly one ``StepRecord`` in
the ledger. Failures inside a step body are collected on the context and
folded into that step's status; they never stop the walk.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from . import log
from .errors import ErrorCategory, StepFailure, UsageError
from .ledger import ResultLedger
from .models import CarryoverConfig, LedgerIssue, RunScript, StepRecord
from .shim import FileOps

StepBody = Callable[["RunContext"], None]


@dataclass(frozen=True)
class StepDefinition:
    """One numbered position in a pipeline."""

    id: int
    name: str
    label: str
    body: StepBody


class Pipeline:
    """Ordered, validated collection of step definitions."""

    def __init__(self, script: RunScript, steps: Sequence[StepDefinition]) -> None:
        ids = [step.id for step in steps]
        if ids != list(range(1, len(steps) + 1)):
            raise ValueError(f"{script} step ids must run 1..{len(steps)}, got {ids}")
        names = [step.name for step in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"{script} step names must be unique")
        self.script = script
        self.steps = tuple(steps)

    @property
    def total(self) -> int:
        return len(self.steps)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(step.name for step in self.steps)

    def find(self, name: str) -> StepDefinition | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


@dataclass(frozen=True)
class RunOptions:
    """Run-mode flags shared by capture and restore."""

    dry_run: bool = False
    yes: bool = False
    resume_from: str | None = None
    only: str | None = None


def validate_selection(pipeline: Pipeline, options: RunOptions) -> None:
    """Reject conflicting or unknown step selections before a run starts.

    Raises:
        UsageError: when ``only`` and ``resume_from`` are both set, or either
            names a step the pipeline does not define.
    """
    if options.only and options.resume_from:
        raise UsageError(
            "--only and --resume-from cannot be used together",
            recovery_hint="Pass one of them.",
        )
    for flag, value in (("--resume-from", options.resume_from), ("--only", options.only)):
        if value is not None and pipeline.find(value) is None:
            raise UsageError(
                f"unknown step name for {flag}: {value}",
                recovery_hint=f"Valid steps: {', '.join(pipeline.names)}",
            )


class RunContext:
    """Mutable state threaded through every step of one run."""

    def __init__(
        self,
        *,
        pipeline: Pipeline,
        ledger: ResultLedger,
        options: RunOptions,
        home: Path,
        backup_dir: Path,
        config: CarryoverConfig | None = None,
        files: FileOps | None = None,
    ) -> None:
        validate_selection(pipeline, options)
        self.pipeline = pipeline
        self.ledger = ledger
        self.options = options
        self.home = home
        self.backup_dir = backup_dir
        self.config = config or CarryoverConfig()
        self.files = files or FileOps(dry_run=options.dry_run)
        resume_step = pipeline.find(options.resume_from) if options.resume_from else None
        self._resume_id = resume_step.id if resume_step else 0
        self._current: StepRecord | None = None

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def git_path(self) -> str:
        return self.config.git_path

    @property
    def current_step(self) -> StepRecord | None:
        return self._current

    def _skip(self, step_id: int, name: str, label: str, reason: str) -> None:
        log.progress(step_id, self.pipeline.total, label, note=f"skipped, {reason}")
        self.ledger.add_step(StepRecord(id=step_id, name=name, label=label, status="skipped"))

    def begin_step(self, step_id: int, name: str, label: str) -> bool:
        """Open a step; return ``False`` when it is filtered out and recorded as skipped."""
        if self._current is not None:
            raise RuntimeError(f"step {self._current.name} is still open")
        only = self.options.only
        if only and name != only:
            self._skip(step_id, name, label, f"only running {only}")
            return False
        if self._resume_id and step_id < self._resume_id:
            self._skip(step_id, name, label, f"resuming from {self.options.resume_from}")
            return False
        log.progress(step_id, self.pipeline.total, label)
        # Status is provisional until end_step.
        self._current = StepRecord(id=step_id, name=name, label=label, status="completed")
        return True

    def end_step(self) -> StepRecord:
        """Close the open step, derive its status, and append it to the ledger."""
        record = self._current
        if record is None:
            raise RuntimeError("end_step() called without an open step")
        record.status = "failed" if record.errors else "completed"
        self._current = None
        self.ledger.add_step(record)
        return record

    def _issue(
        self,
        code: str,
        message: str,
        category: ErrorCategory,
        suggestion: str | None,
    ) -> LedgerIssue:
        if self._current is None:
            raise RuntimeError(f"{code}: issue recorded outside a step")
        return LedgerIssue(code=code, message=message, category=category, suggestion=suggestion)

    def warn(
        self,
        code: str,
        message: str,
        *,
        category: ErrorCategory = "transient",
        suggestion: str | None = None,
    ) -> None:
        """Record a non-fatal warning on the open step and echo it."""
        issue = self._issue(code, message, category, suggestion)
        self._current.warnings.append(issue)
        log.issue("WARN", message)

    def error(
        self,
        code: str,
        message: str,
        *,
        category: ErrorCategory = "permanent",
        suggestion: str | None = None,
    ) -> None:
        """Record an error on the open step (the step will end as failed) and echo it."""
        issue = self._issue(code, message, category, suggestion)
        self._current.errors.append(issue)
        log.issue("ERROR", message, hint=suggestion)

    def resume_hint(self, name: str | None = None) -> str:
        step_name = name or (self._current.name if self._current else "")
        return f"Retry with --resume-from={step_name}"

    def run_step(self, step: StepDefinition) -> StepRecord | None:
        """Run one step body between ``begin_step`` and ``end_step``."""
        if not self.begin_step(step.id, step.name, step.label):
            return None
        try:
            step.body(self)
        except StepFailure as exc:
            self.error(
                exc.error_code,
                str(exc),
                category=exc.category,
                suggestion=exc.suggestion,
            )
        except Exception as exc:
            # Malformed backup content must not abort the remaining steps.
            log.debug(traceback.format_exc())
            self.error(
                "UNEXPECTED",
                f"{type(exc).__name__}: {exc}",
                category="permanent",
                suggestion=self.resume_hint(),
            )
        return self.end_step()

    def run_all(self) -> None:
        for step in self.pipeline.steps:
            self.run_step(step)
