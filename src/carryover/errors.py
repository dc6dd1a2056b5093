"""Failure contracts for Carryover runs.

Argument and input problems raise ``CarryoverError`` subclasses before a run
starts. Inside a run, step bodies record failures on the run context and only
raise ``StepFailure`` to stop their own body early; the step runner converts
it into a recorded error. Any other exception escaping a step body is recorded
as an ``UNEXPECTED`` error on that step and the run moves on.
"""

from __future__ import annotations

from typing import Literal

ErrorCategory = Literal["transient", "permanent", "user_action"]

CarryoverErrorCode = Literal[
    "usage",
    "backup_format",
    "step_failed",
]


class CarryoverError(Exception):
    """Expected failure with a stable symbolic code and optional hint."""

    def __init__(
        self,
        code: CarryoverErrorCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class UsageError(CarryoverError):
    """Invalid invocation (unknown step, conflicting flags, bad path)."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("usage", message, recovery_hint=recovery_hint)


class BackupFormatError(CarryoverError):
    """The input folder does not have the expected backup layout."""

    def __init__(self, missing: list[str], root: str) -> None:
        self.missing = list(missing)
        self.root = root
        names = ", ".join(self.missing)
        super().__init__(
            "backup_format",
            f"{root} is not a valid backup: missing {names}",
            recovery_hint="Point at the folder produced by 'carryover capture'.",
        )


class StepFailure(CarryoverError):
    """Abort the current step body and record a typed error for it."""

    def __init__(
        self,
        error_code: str,
        message: str,
        *,
        category: ErrorCategory = "permanent",
        suggestion: str | None = None,
    ) -> None:
        super().__init__("step_failed", message, recovery_hint=suggestion)
        self.error_code = error_code
        self.category: ErrorCategory = category
        self.suggestion = suggestion
