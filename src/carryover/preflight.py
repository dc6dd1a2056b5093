"""Environment and input checks that gate a run before any mutation."""

from __future__ import annotations

import shutil
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from . import exec as exec_util
from . import log
from . import paths
from .errors import BackupFormatError
from .ledger import ResultLedger
from .models import CarryoverConfig, CheckStatus

BROWSER_PROCESS_NAME = "Microsoft Edge"
CAPTURE_OPTIONAL_TOOLS = ("plutil", "sqlite3", "brew", "volta")
CURSOR_APP_CLI = Path("/Applications/Cursor.app/Contents/Resources/app/bin/cursor")


@dataclass(frozen=True)
class PreflightCheck:
    name: str
    status: CheckStatus
    message: str = ""


def require_backup_structure(root: Path) -> None:
    """Fail fast when ``root`` does not look like a Carryover backup.

    Raises:
        BackupFormatError: listing every missing required entry.
    """
    if not root.is_dir():
        raise BackupFormatError(list(paths.REQUIRED_BACKUP_ENTRIES), str(root))
    missing = paths.missing_backup_entries(root)
    if missing:
        raise BackupFormatError(missing, str(root))


def check_tool(name: str, *, required: bool, label: str | None = None) -> PreflightCheck:
    check_name = label or name
    if exec_util.command_available(name):
        return PreflightCheck(check_name, "pass", f"{name} is available")
    if required:
        return PreflightCheck(check_name, "fail", f"{name} is required but not found")
    return PreflightCheck(check_name, "warn", f"{name} not found (optional)")


def resolve_cursor_cli() -> str | None:
    """Return the Cursor CLI from ``PATH`` or the app bundle."""
    if exec_util.command_available("cursor"):
        return "cursor"
    if CURSOR_APP_CLI.is_file():
        return str(CURSOR_APP_CLI)
    return None


def free_megabytes(path: Path) -> int | None:
    """Return free space in MB on the filesystem holding ``path``."""
    probe = path
    while not probe.exists():
        if probe.parent == probe:
            return None
        probe = probe.parent
    try:
        usage = shutil.disk_usage(probe)
    except OSError:
        return None
    return usage.free // (1024 * 1024)


def check_disk_space(path: Path, min_free_mb: int, *, below: CheckStatus) -> PreflightCheck:
    available = free_megabytes(path)
    if available is not None and available >= min_free_mb:
        return PreflightCheck("disk_space", "pass", f"{available}MB available")
    shown = "unknown" if available is None else str(available)
    return PreflightCheck(
        "disk_space", below, f"Only {shown}MB available, need {min_free_mb}MB"
    )


def check_network(url: str, timeout_seconds: float) -> PreflightCheck:
    """Probe ``url``; unreachable is informational only."""
    if not url:
        return PreflightCheck("network", "pass", "network probe disabled")
    request = urllib.request.Request(url, method="HEAD")
    try:
        with urllib.request.urlopen(request, timeout=timeout_seconds):
            pass
    except urllib.error.HTTPError:
        # Any HTTP answer means the host is reachable.
        return PreflightCheck("network", "pass", f"Can reach {url}")
    except (urllib.error.URLError, TimeoutError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        return PreflightCheck(
            "network", "warn", f"Cannot reach {url} ({reason}); git clones may fail"
        )
    return PreflightCheck("network", "pass", f"Can reach {url}")


def process_running(name: str) -> bool:
    result = exec_util.try_run_command(["pgrep", "-x", name])
    return result is not None and result.returncode == 0


def check_browser_not_running() -> PreflightCheck:
    if process_running(BROWSER_PROCESS_NAME):
        return PreflightCheck(
            "edge_not_running",
            "warn",
            f"{BROWSER_PROCESS_NAME} is running; profile restore may conflict",
        )
    return PreflightCheck("edge_not_running", "pass", f"{BROWSER_PROCESS_NAME} is not running")


def capture_checks(config: CarryoverConfig, destination: Path) -> list[PreflightCheck]:
    checks = [check_tool(config.git_path, required=True, label="git")]
    checks.extend(check_tool(tool, required=False) for tool in CAPTURE_OPTIONAL_TOOLS)
    if resolve_cursor_cli():
        checks.append(PreflightCheck("cursor", "pass", "cursor is available"))
    else:
        checks.append(PreflightCheck("cursor", "warn", "cursor not found (optional)"))
    checks.append(check_disk_space(destination, config.min_free_mb, below="fail"))
    return checks


def restore_checks(config: CarryoverConfig, home: Path) -> list[PreflightCheck]:
    return [
        check_tool(config.git_path, required=True, label="git"),
        check_network(config.network_probe_url, config.network_timeout_seconds),
        check_disk_space(home, config.min_free_mb, below="warn"),
        PreflightCheck("backup_structure", "pass", "Backup structure validated"),
        check_browser_not_running(),
    ]


def run_preflight(ledger: ResultLedger, checks: Iterable[PreflightCheck]) -> bool:
    """Record every check in the ledger and return the overall verdict."""
    log.heading("Running preflight checks...")
    for check in checks:
        ledger.add_preflight_check(check.name, check.status, check.message)
        if check.status == "fail":
            log.error(f"  FAIL: {check.message}")
        elif check.status == "warn":
            log.warning(f"  WARN: {check.message}")
        else:
            log.debug(f"  ok: {check.message}")
    passed = ledger.record.preflight.passed
    if passed:
        log.success("  Preflight checks passed.")
    else:
        log.error("Preflight checks failed. Install missing prerequisites and retry.")
    return passed
