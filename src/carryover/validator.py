"""Read-only checks run after every step has finished.

The verdict lands in ``validation`` in the ledger and is independent of step
status: a completed step can still produce output that fails validation.
"""

from __future__ import annotations

import json
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from . import exec as exec_util
from . import log
from . import paths
from .ledger import ResultLedger
from .models import CheckStatus

MIN_CAPTURED_FILES = 10
PRIVATE_MODE = 0o600


@dataclass(frozen=True)
class ValidationCheck:
    name: str
    status: CheckStatus
    message: str = ""


ValidationRule = Callable[[], ValidationCheck]


def check_manifest_json(backup_dir: Path) -> ValidationCheck:
    manifest = backup_dir / paths.MANIFEST_FILENAME
    if not manifest.is_file():
        return ValidationCheck("manifest_json", "fail", f"{paths.MANIFEST_FILENAME} not found")
    try:
        json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        return ValidationCheck("manifest_json", "fail", f"{paths.MANIFEST_FILENAME} is not valid JSON: {exc}")
    return ValidationCheck("manifest_json", "pass", f"{paths.MANIFEST_FILENAME} is valid JSON")


def check_directory(backup_dir: Path, name: str) -> ValidationCheck:
    if (backup_dir / name).is_dir():
        return ValidationCheck(f"dir_{name}", "pass", f"{name} exists")
    return ValidationCheck(f"dir_{name}", "fail", f"{name} directory missing")


def count_files(root: Path) -> int:
    return sum(1 for entry in root.rglob("*") if entry.is_file())


def check_file_count(backup_dir: Path, minimum: int = MIN_CAPTURED_FILES) -> ValidationCheck:
    total = count_files(backup_dir)
    if total > minimum:
        return ValidationCheck("file_count", "pass", f"{total} files")
    return ValidationCheck("file_count", "fail", f"Only {total} files (expected >{minimum})")


def check_file_present(name: str, path: Path, display: str) -> ValidationCheck:
    if path.is_file():
        return ValidationCheck(name, "pass", f"{display} exists")
    return ValidationCheck(name, "fail", f"{display} is missing")


def check_private_key_mode(path: Path, display: str) -> ValidationCheck:
    if not path.is_file():
        return ValidationCheck("ssh_key_perms", "warn", f"SSH key not found at {display}")
    mode = stat.S_IMODE(path.stat().st_mode)
    if mode == PRIVATE_MODE:
        return ValidationCheck("ssh_key_perms", "pass", "SSH key permissions are 600")
    return ValidationCheck(
        "ssh_key_perms", "warn", f"SSH key permissions are {mode:o} (expected 600)"
    )


def check_on_path(tool: str) -> ValidationCheck:
    if exec_util.command_available(tool):
        return ValidationCheck(f"{tool}_in_path", "pass", f"{tool} is in PATH")
    return ValidationCheck(f"{tool}_in_path", "warn", f"{tool} is not in PATH")


def check_worktrees(workspaces: Path) -> ValidationCheck:
    if not workspaces.is_dir():
        return ValidationCheck("conductor_worktrees", "warn", f"{workspaces} does not exist")
    found = [
        entry
        for project in workspaces.iterdir()
        if project.is_dir()
        for entry in project.iterdir()
        if (entry / ".git").exists()
    ]
    if found:
        return ValidationCheck("conductor_worktrees", "pass", f"{len(found)} worktree(s) found")
    return ValidationCheck("conductor_worktrees", "warn", f"No worktrees found under {workspaces}")


def capture_rules(backup_dir: Path) -> list[ValidationRule]:
    return [
        lambda: check_manifest_json(backup_dir),
        lambda: check_directory(backup_dir, paths.CLAUDE_CODE_DIR),
        lambda: check_directory(backup_dir, paths.SHELL_ENV_DIR),
        lambda: check_directory(backup_dir, paths.CONDUCTOR_DIR),
        lambda: check_file_count(backup_dir),
    ]


def restore_rules(backup_dir: Path, home: Path) -> list[ValidationRule]:
    rules: list[ValidationRule] = []
    if (backup_dir / paths.CLAUDE_CODE_DIR).is_dir():
        rules.append(
            lambda: check_file_present(
                "claude_settings", home / ".claude" / "settings.json", "~/.claude/settings.json"
            )
        )
    rules.append(lambda: check_file_present("zshrc", home / ".zshrc", "~/.zshrc"))
    rules.append(
        lambda: check_private_key_mode(home / ".ssh" / "id_ed25519", "~/.ssh/id_ed25519")
    )
    for tool in ("volta", "node", "npm"):
        rules.append(lambda tool=tool: check_on_path(tool))
    rules.append(lambda: check_worktrees(home / "conductor" / "workspaces"))
    return rules


def run_validation(ledger: ResultLedger, rules: Iterable[ValidationRule]) -> bool:
    """Evaluate each rule, record it, and return ``validation.passed``."""
    log.heading("Running post-run validation...")
    for rule in rules:
        check = rule()
        ledger.add_validation_check(check.name, check.status, check.message)
        if check.status == "fail":
            log.error(f"  FAIL: {check.name}: {check.message}")
        elif check.status == "warn":
            log.warning(f"  WARN: {check.name}: {check.message}")
        else:
            log.debug(f"  ok: {check.name}: {check.message}")
    passed = ledger.record.validation.passed
    if passed:
        log.success("  All validation checks passed.")
    else:
        log.error(f"  Validation failed; see {ledger.path} for details")
    return passed
