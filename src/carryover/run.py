"""Drive one capture or restore run from preflight to the final summary."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from . import __version__, log
from .ledger import (
    EXIT_INTERRUPTED,
    EXIT_OK,
    EXIT_PREFLIGHT_FAILED,
    EXIT_STEPS_FAILED,
    ResultLedger,
)
from .models import CarryoverConfig
from .preflight import PreflightCheck, run_preflight
from .runner import Pipeline, RunContext, RunOptions
from .validator import ValidationRule, run_validation


@dataclass
class RunPlan:
    """Everything a run needs besides the step bodies themselves."""

    pipeline: Pipeline
    options: RunOptions
    home: Path
    backup_dir: Path
    ledger_path: Path
    config: CarryoverConfig
    checks: Sequence[PreflightCheck]
    rules: Iterable[ValidationRule] | None = None
    follow_up: Callable[[], Iterable[str]] | None = None


def execute(plan: RunPlan) -> int:
    """Run ``plan`` and return the process exit code.

    The ledger is finalized on every path out of this function, including an
    interrupt or an unexpected exception, so a partial run stays inspectable.
    """
    started = time.monotonic()
    options = plan.options
    ledger = ResultLedger.create(
        plan.ledger_path,
        script=plan.pipeline.script,
        total_steps=plan.pipeline.total,
        version=__version__,
        dry_run=options.dry_run,
        resume_from=options.resume_from,
        only=options.only,
    )
    log.debug(f"ledger: {ledger.path}")
    exit_code = EXIT_STEPS_FAILED
    try:
        if not run_preflight(ledger, plan.checks):
            exit_code = EXIT_PREFLIGHT_FAILED
            return exit_code
        if options.dry_run:
            log.warning("DRY RUN: no files will be written")
        ctx = RunContext(
            pipeline=plan.pipeline,
            ledger=ledger,
            options=options,
            home=plan.home,
            backup_dir=plan.backup_dir,
            config=plan.config,
        )
        ctx.run_all()
        if plan.rules is not None:
            run_validation(ledger, plan.rules)
        exit_code = ledger.derived_exit_code()
        return exit_code
    except KeyboardInterrupt:
        log.error("Interrupted.")
        exit_code = EXIT_INTERRUPTED
        return exit_code
    finally:
        ledger.finalize(exit_code)
        if exit_code != EXIT_PREFLIGHT_FAILED:
            print_summary(ledger, plan, time.monotonic() - started)


def print_summary(ledger: ResultLedger, plan: RunPlan, elapsed: float) -> None:
    record = ledger.record
    summary = record.summary
    minutes, seconds = divmod(int(elapsed), 60)
    log.heading(f"{plan.pipeline.script.capitalize()} finished")
    log.info(
        f"  {summary.completed} completed, {summary.failed} failed, "
        f"{summary.skipped} skipped, {summary.warnings} warning(s)"
    )
    for step in record.steps:
        for issue in step.errors:
            log.error(f"  [{step.name}] {issue.code}: {issue.message}")
        for issue in step.warnings:
            log.warning(f"  [{step.name}] {issue.code}: {issue.message}")
    if record.validation.checks and not record.validation.passed:
        log.warning("  Post-run validation reported failures.")
    log.info(f"  Time elapsed: {minutes}m {seconds}s")
    log.info(f"  Results: {ledger.path}")
    if plan.follow_up and record.exit_code == EXIT_OK and not plan.options.dry_run:
        log.heading("Manual steps remaining:")
        for line in plan.follow_up():
            log.info(f"  - {line}")
