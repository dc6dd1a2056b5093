"""Persisted result ledger for capture and restore runs.

The ledger is the machine-readable contract of a run. It is rewritten
atomically after every mutation so a killed run still leaves an accurate
partial record that an agent can use to decide how to resume.
"""

from __future__ import annotations

import json
from pathlib import Path

from . import log
from .config import utc_now, write_text_atomic
from .models import (
    CheckRecord,
    CheckStatus,
    LedgerSummary,
    RunLedger,
    RunScript,
    StepRecord,
)

EXIT_OK = 0
EXIT_STEPS_FAILED = 1
EXIT_USAGE = 2
EXIT_PREFLIGHT_FAILED = 3
EXIT_INTERRUPTED = 130


class ResultLedger:
    """Single-writer handle around a ``RunLedger`` and its file."""

    def __init__(self, path: Path, record: RunLedger) -> None:
        self.path = path
        self.record = record

    @classmethod
    def create(
        cls,
        path: Path,
        *,
        script: RunScript,
        total_steps: int,
        version: str,
        dry_run: bool = False,
        resume_from: str | None = None,
        only: str | None = None,
    ) -> ResultLedger:
        """Start a fresh ledger and write it immediately."""
        record = RunLedger(
            script=script,
            version=version,
            started_at=utc_now(),
            dry_run=dry_run,
            resume_from=resume_from,
            only=only,
            summary=LedgerSummary(total_steps=total_steps),
        )
        ledger = cls(path, record)
        ledger.flush()
        return ledger

    @classmethod
    def load(cls, path: Path) -> ResultLedger:
        payload = json.loads(path.read_text(encoding="utf-8"))
        return cls(path, RunLedger.model_validate(payload))

    @property
    def finalized(self) -> bool:
        return self.record.finished_at is not None

    def flush(self) -> None:
        payload = self.record.model_dump(mode="json", exclude_none=False)
        for step in payload["steps"]:
            for issue in (*step["errors"], *step["warnings"]):
                if issue.get("suggestion") is None:
                    issue.pop("suggestion", None)
        write_text_atomic(self.path, json.dumps(payload, indent=2) + "\n")

    def add_preflight_check(self, name: str, status: CheckStatus, message: str = "") -> None:
        self.record.preflight.checks.append(
            CheckRecord(name=name, status=status, message=message)
        )
        if status == "fail":
            self.record.preflight.passed = False
        self.flush()

    def add_step(self, step: StepRecord) -> None:
        """Append a finished step record and bump the matching counters."""
        summary = self.record.summary
        self.record.steps.append(step)
        if step.status == "completed":
            summary.completed += 1
        elif step.status == "failed":
            summary.failed += 1
        else:
            summary.skipped += 1
        summary.warnings += len(step.warnings)
        self.flush()

    def add_validation_check(self, name: str, status: CheckStatus, message: str = "") -> None:
        self.record.validation.checks.append(
            CheckRecord(name=name, status=status, message=message)
        )
        if status == "fail":
            self.record.validation.passed = False
        self.flush()

    def derived_exit_code(self) -> int:
        """Exit status implied by the recorded steps."""
        if self.record.summary.failed > 0:
            return EXIT_STEPS_FAILED
        return EXIT_OK

    def finalize(self, exit_code: int) -> None:
        """Stamp ``finished_at`` and ``exit_code``; later calls are ignored."""
        if self.finalized:
            log.trace(f"ledger already finalized: {self.path}")
            return
        self.record.finished_at = utc_now()
        self.record.exit_code = exit_code
        self.flush()
