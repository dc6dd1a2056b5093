"""Implementation for the ``carryover restore`` command.

``carryover restore`` rebuilds the developer environment from a backup folder
or an encrypted ``.zip`` produced by ``carryover capture``.
"""

import contextlib
import tempfile
from pathlib import Path

from .. import bundle, config, io, log, paths
from ..errors import UsageError
from ..ledger import EXIT_OK
from ..preflight import require_backup_structure, restore_checks
from ..run import RunPlan, execute
from ..runner import RunOptions, validate_selection
from ..steps import RESTORE_PIPELINE
from ..validator import restore_rules

FOLLOW_UP = (
    "Authenticate GitHub CLI: gh auth login",
    "Verify SSH key works: ssh -T git@github.com",
    "Verify AWS CLI auth (if AWS was restored): aws sts get-caller-identity",
    "Install Claude Code if needed: npm install -g @anthropic-ai/claude-code",
    "Install the Conductor app from its official source",
    "Re-authenticate Codex if its auth token expired",
)


def _npm_follow_up(home: Path) -> list[str]:
    workspaces = home / "conductor" / "workspaces"
    if not workspaces.is_dir():
        return []
    lines = []
    for manifest in sorted(workspaces.glob("*/*/package.json")):
        lines.append(f"cd {manifest.parent} && npm install")
    return lines


def restore_backup(args: object) -> int:
    """Restore a backup into the configured home directory.

    Args:
        args: CLI argument object with ``backup``, ``dry_run``, ``yes``,
            ``resume_from`` and ``only``.

    Returns:
        Process exit code derived from the run ledger.

    Raises:
        UsageError: for bad flags or a missing backup path.
        BackupFormatError: when the folder is not a Carryover backup.

    Example:
        $ carryover restore ~/Downloads/workspace-backup-2026-01-02-030405.zip
    """
    options = RunOptions(
        dry_run=bool(getattr(args, "dry_run", False)),
        yes=bool(getattr(args, "yes", False)),
        resume_from=getattr(args, "resume_from", None),
        only=getattr(args, "only", None),
    )
    validate_selection(RESTORE_PIPELINE, options)
    source = Path(getattr(args, "backup")).expanduser().resolve()
    if not source.exists():
        raise UsageError(f"backup not found: {source}")
    settings = config.load_config()
    home = config.resolve_home(settings)

    with contextlib.ExitStack() as stack:
        if source.is_file() and source.suffix == ".zip":
            scratch = Path(stack.enter_context(tempfile.TemporaryDirectory(prefix="carryover-")))
            backup_dir = bundle.extract_bundle(source, scratch)
            ledger_path = paths.results_path_for_archive(source)
        else:
            backup_dir = source
            ledger_path = backup_dir / paths.RESULTS_FILENAME
        require_backup_structure(backup_dir)

        if not (options.yes or options.dry_run):
            question = (
                f"Restore {backup_dir.name} into {home}? "
                f"Existing files are kept as *{paths.PRE_RESTORE_SUFFIX}"
            )
            if not io.confirm(question, default=False):
                log.info("Aborted.")
                return EXIT_OK

        log.heading(f"Restoring {backup_dir} into {home}")
        skip_validation = options.dry_run or bool(options.only)
        plan = RunPlan(
            pipeline=RESTORE_PIPELINE,
            options=options,
            home=home,
            backup_dir=backup_dir,
            ledger_path=ledger_path,
            config=settings,
            checks=restore_checks(settings, home),
            rules=None if skip_validation else restore_rules(backup_dir, home),
            follow_up=lambda: [*FOLLOW_UP, *_npm_follow_up(home)],
        )
        return execute(plan)
