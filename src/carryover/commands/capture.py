"""Implementation for the ``carryover capture`` command.

``carryover capture`` snapshots the developer environment below the home
directory into a timestamped backup folder, optionally encrypting it.
"""

import datetime as dt
import shutil
from pathlib import Path

from .. import bundle, config, io, log, paths
from ..ledger import EXIT_OK
from ..preflight import capture_checks
from ..run import RunPlan, execute
from ..runner import RunOptions, validate_selection
from ..steps import CAPTURE_PIPELINE
from ..validator import capture_rules

SENSITIVE_CONTENTS = (
    "SSH private key (shell-env/ssh/id_ed25519)",
    "Codex OAuth tokens (codex-cli/auth.json)",
    ".env files with API keys (conductor/workspaces/**/*.env)",
    "GitHub CLI auth (shell-env/gh/hosts.yml)",
    "AWS credentials (shell-env/aws/credentials)",
    "npm auth tokens (shell-env/npmrc)",
    "DataGrip license key (db-tools/datagrip/datagrip.key)",
    "PostgreSQL passwords (db-tools/psql/pgpass)",
    "Edge browsing history and form data (edge-browser/*/History, Web Data)",
)


def _resolve_destination(args: object, backups_dir: Path) -> Path:
    destination = getattr(args, "destination", None)
    if destination:
        return Path(destination).expanduser().resolve()
    return backups_dir / paths.backup_folder_name(dt.datetime.now())


def capture_backup(args: object) -> int:
    """Capture the current machine into a backup folder.

    Args:
        args: CLI argument object with ``destination``, ``dry_run``, ``yes``,
            ``resume_from``, ``only`` and ``encrypt``.

    Returns:
        Process exit code derived from the run ledger.

    Example:
        $ carryover capture --encrypt
    """
    options = RunOptions(
        dry_run=bool(getattr(args, "dry_run", False)),
        yes=bool(getattr(args, "yes", False)),
        resume_from=getattr(args, "resume_from", None),
        only=getattr(args, "only", None),
    )
    validate_selection(CAPTURE_PIPELINE, options)
    settings = config.load_config()
    home = config.resolve_home(settings)
    backup_dir = _resolve_destination(args, config.resolve_backups_dir(settings))
    encrypt = bool(getattr(args, "encrypt", False))

    reusing = bool(options.resume_from or options.only)
    if backup_dir.exists() and not reusing and not options.dry_run:
        question = f"{backup_dir} already exists. Replace it?"
        if not (options.yes or io.confirm(question, default=False)):
            log.info("Aborted.")
            return EXIT_OK
        shutil.rmtree(backup_dir)

    if options.dry_run:
        ledger_path = paths.dry_run_results_path()
    else:
        backup_dir.mkdir(parents=True, exist_ok=True)
        ledger_path = backup_dir / paths.RESULTS_FILENAME

    log.heading(f"Capturing {home} into {backup_dir}")
    plan = RunPlan(
        pipeline=CAPTURE_PIPELINE,
        options=options,
        home=home,
        backup_dir=backup_dir,
        ledger_path=ledger_path,
        config=settings,
        checks=capture_checks(settings, backup_dir),
        rules=None if options.dry_run else capture_rules(backup_dir),
    )
    exit_code = execute(plan)

    if options.dry_run:
        if encrypt:
            log.dry_run("Would encrypt backup to .zip and delete unencrypted folder")
        return exit_code
    if encrypt and exit_code == EXIT_OK:
        bundle.encrypt_backup(backup_dir)
    elif not encrypt:
        log.warning("This backup contains SENSITIVE data:")
        for item in SENSITIVE_CONTENTS:
            log.warning(f"  - {item}")
        log.warning("Encrypt it before uploading anywhere, e.g. carryover capture --encrypt")
    return exit_code
