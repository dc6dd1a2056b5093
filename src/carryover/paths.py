"""Path helpers for locating Carryover data directories and backup layout."""

import datetime as dt
from pathlib import Path

from platformdirs import user_config_dir, user_data_dir, user_state_dir

CARRYOVER_APP_NAME = "carryover"
BACKUPS_DIRNAME = "backups"
CONFIG_FILENAME = "config.json"
RESULTS_FILENAME = "results.json"
DRY_RUN_RESULTS_FILENAME = "capture-dry-run-results.json"
BACKUP_NAME_PREFIX = "workspace-backup-"
PRE_RESTORE_SUFFIX = ".pre-restore"
FAILED_PATCH_SUFFIX = ".failed"

MANIFEST_FILENAME = "manifest.json"
RESTORE_GUIDE_FILENAME = "RESTORE-GUIDE.md"

# Top-level backup sections.
CLAUDE_CODE_DIR = "claude-code"
PROJECT_CONFIGS_DIR = "claude-code-project-configs"
CODEX_CLI_DIR = "codex-cli"
SHARED_AGENTS_DIR = "shared-agents"
CONDUCTOR_DIR = "conductor"
SHELL_ENV_DIR = "shell-env"
HOMEBREW_DIR = "homebrew"
VOLTA_DIR = "volta"
EDGE_DIR = "edge-browser"
CURSOR_DIR = "cursor-ide"
DB_TOOLS_DIR = "db-tools"
DESKTOP_APPS_DIR = "desktop-apps"
GITHUB_REPOS_DIR = "github-repos"

REQUIRED_BACKUP_ENTRIES = (
    RESTORE_GUIDE_FILENAME,
    MANIFEST_FILENAME,
    CLAUDE_CODE_DIR,
    CODEX_CLI_DIR,
    CONDUCTOR_DIR,
    SHELL_ENV_DIR,
    VOLTA_DIR,
)

# Worktree manifest naming inside ``conductor/workspaces/<project>/``.
MAIN_REPO_INFO_FILENAME = "_main-repo-info.json"
STASH_LIST_FILENAME = "_stash-list.txt"


def carryover_data_dir() -> Path:
    """Return the base Carryover data directory.

    Example:
        >>> isinstance(carryover_data_dir(), Path)
        True
    """
    return Path(user_data_dir(CARRYOVER_APP_NAME))


def default_backups_dir() -> Path:
    """Return the default parent directory for new backups.

    Example:
        >>> default_backups_dir().name == BACKUPS_DIRNAME
        True
    """
    return carryover_data_dir() / BACKUPS_DIRNAME


def config_path() -> Path:
    """Return the default config file path."""
    return Path(user_config_dir(CARRYOVER_APP_NAME)) / CONFIG_FILENAME


def state_dir() -> Path:
    """Return the directory for run state that must not touch a destination."""
    return Path(user_state_dir(CARRYOVER_APP_NAME))


def dry_run_results_path() -> Path:
    """Return where a capture dry-run keeps its result ledger."""
    return state_dir() / DRY_RUN_RESULTS_FILENAME


def backup_folder_name(now: dt.datetime) -> str:
    """Return the timestamped folder name for a new backup.

    Example:
        >>> backup_folder_name(dt.datetime(2026, 1, 2, 3, 4, 5))
        'workspace-backup-2026-01-02-030405'
    """
    return f"{BACKUP_NAME_PREFIX}{now.strftime('%Y-%m-%d-%H%M%S')}"


def results_path_for_archive(archive: Path) -> Path:
    """Return the ledger path kept next to an encrypted backup archive.

    Example:
        >>> results_path_for_archive(Path("/tmp/backup.zip")).name
        'backup.results.json'
    """
    return archive.with_name(f"{archive.stem}.results.json")


def pre_restore_path(target: Path) -> Path:
    """Return the sidecar path used to keep a file before it is overwritten.

    Example:
        >>> pre_restore_path(Path("/home/u/.zshrc")).name
        '.zshrc.pre-restore'
    """
    return target.with_name(f"{target.name}{PRE_RESTORE_SUFFIX}")


def conductor_workspaces(root: Path) -> Path:
    """Return the orchestrator workspaces directory below ``root``."""
    return root / CONDUCTOR_DIR / "workspaces"


def missing_backup_entries(root: Path) -> list[str]:
    """Return required top-level entries that are absent from ``root``."""
    return [name for name in REQUIRED_BACKUP_ENTRIES if not (root / name).exists()]
