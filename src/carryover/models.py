"""Pydantic models for the result ledger, backup manifests, and config."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ErrorCategory

RunScript = Literal["capture", "restore"]
StepStatus = Literal["completed", "failed", "skipped"]
CheckStatus = Literal["pass", "warn", "fail"]

STEP_STATUS_VALUES = ("completed", "failed", "skipped")
CHECK_STATUS_VALUES = ("pass", "warn", "fail")


class LedgerIssue(BaseModel):
    """A typed error or warning attached to a step.

    Attributes:
        code: Short symbolic token (``CLONE_FAILED``).
        message: Human-readable text.
        category: ``transient``, ``permanent`` or ``user_action``.
        suggestion: Optional actionable retry hint.

    Example:
        >>> LedgerIssue(code="X", message="boom", category="transient").category
        'transient'
    """

    code: str
    message: str
    category: ErrorCategory = "permanent"
    suggestion: str | None = None


class StepRecord(BaseModel):
    """Outcome of one pipeline position."""

    id: int
    name: str
    label: str = ""
    status: StepStatus
    errors: list[LedgerIssue] = Field(default_factory=list)
    warnings: list[LedgerIssue] = Field(default_factory=list)


class CheckRecord(BaseModel):
    """A preflight or validation check result."""

    name: str
    status: CheckStatus
    message: str = ""


class CheckSection(BaseModel):
    passed: bool = True
    checks: list[CheckRecord] = Field(default_factory=list)


class LedgerSummary(BaseModel):
    total_steps: int
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    warnings: int = 0


class RunLedger(BaseModel):
    """Serialized shape of ``results.json``."""

    script: RunScript
    version: str = "0.0.0"
    started_at: str
    finished_at: str | None = None
    exit_code: int | None = None
    dry_run: bool = False
    resume_from: str | None = None
    only: str | None = None
    preflight: CheckSection = Field(default_factory=CheckSection)
    steps: list[StepRecord] = Field(default_factory=list)
    validation: CheckSection = Field(default_factory=CheckSection)
    summary: LedgerSummary


class MainRepoInfo(BaseModel):
    """Per-project metadata written next to the worktree manifests.

    Example:
        >>> info = MainRepoInfo.model_validate(
        ...     {"remote_origin": "git@github.com:o/r.git", "main_repo_path": "/r",
        ...      "worktree_parent": "/w", "remote_heroku": ""}
        ... )
        >>> info.remote_heroku is None
        True
    """

    model_config = ConfigDict(extra="allow")

    remote_origin: str
    remote_heroku: str | None = None
    main_branch: str = "main"
    main_repo_path: str
    worktree_parent: str
    stash_count: int = 0

    @field_validator("remote_heroku", mode="before")
    @classmethod
    def normalize_optional_remote(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WorktreeManifest(BaseModel):
    """Metadata recorded for one captured worktree (a Resource Item)."""

    model_config = ConfigDict(extra="allow")

    name: str
    branch: str = ""
    commit: str = ""
    remote: str = ""
    has_env: bool = False
    has_node_modules: bool = False

    @field_validator("branch", "commit", "remote", mode="before")
    @classmethod
    def normalize_text(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value


class VoltaPackages(BaseModel):
    node_default: str
    npm_default: str = "bundled"
    global_packages: list[str] = Field(default_factory=list)


class BackupManifest(BaseModel):
    """Top-level ``manifest.json`` describing a backup folder."""

    model_config = ConfigDict(extra="allow")

    backup_date: str
    backup_time: str
    hostname: str
    platform: str
    user: str
    carryover_version: str
    total_size_bytes: int
    file_count: int
    warnings: int
    sections: dict[str, int] = Field(default_factory=dict)


class CarryoverConfig(BaseModel):
    """User configuration for Carryover.

    Attributes:
        home: Home directory captured from / restored into.
        backups_dir: Parent directory for new backups.
        min_free_mb: Free-space threshold checked by preflight.
        network_probe_url: URL probed for reachability; empty disables it.
        network_timeout_seconds: Timeout for the reachability probe.
        git_path: Git executable.

    Example:
        >>> CarryoverConfig(git_path="  ").git_path
        'git'
    """

    model_config = ConfigDict(extra="allow")

    home: str | None = None
    backups_dir: str | None = None
    min_free_mb: int = 500
    network_probe_url: str = "https://github.com"
    network_timeout_seconds: float = 5.0
    git_path: str = "git"

    @field_validator("git_path", mode="before")
    @classmethod
    def normalize_git_path(cls, value: object) -> object:
        if value is None:
            return "git"
        if isinstance(value, str):
            normalized = value.strip()
            return normalized or "git"
        return value
