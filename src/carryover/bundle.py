"""Password-protected zip bundles of a finished backup folder."""

from __future__ import annotations

import shutil
from pathlib import Path

from . import exec as exec_util
from . import log, paths
from .errors import UsageError


def encrypt_backup(backup_dir: Path) -> Path | None:
    """Zip ``backup_dir`` with a password and delete the plain folder.

    ``zip`` asks for the password on the terminal. The run ledger is kept
    next to the archive. Returns the archive path, or ``None`` when
    encryption failed and the folder was kept.
    """
    archive = backup_dir.with_name(f"{backup_dir.name}.zip")
    log.info("Encrypting backup...")
    result = exec_util.run_interactive(
        ["zip", "-er", str(archive), f"{backup_dir.name}/"], cwd=backup_dir.parent
    )
    if result is None or not result.ok:
        log.error(f"Encryption failed; unencrypted backup preserved at {backup_dir}")
        return None
    results = backup_dir / paths.RESULTS_FILENAME
    if results.is_file():
        shutil.copy2(results, archive.with_name(f"{archive.stem}.capture-results.json"))
    shutil.rmtree(backup_dir)
    size_mb = archive.stat().st_size // (1024 * 1024)
    log.success(f"  Encrypted: {archive} ({size_mb}MB)")
    log.info("  The unencrypted folder has been deleted.")
    return archive


def extract_bundle(archive: Path, into: Path) -> Path:
    """Unzip ``archive`` into ``into`` and return the backup folder inside it.

    Raises:
        UsageError: when ``unzip`` fails or the archive holds no folder.
    """
    log.info(f"Decrypting and extracting {archive}...")
    result = exec_util.run_interactive(["unzip", "-q", str(archive), "-d", str(into)])
    if result is None or not result.ok:
        raise UsageError(
            f"failed to decrypt or extract {archive}",
            recovery_hint="Check the password and that 'unzip' is installed.",
        )
    folders = sorted(entry for entry in into.iterdir() if entry.is_dir())
    if not folders:
        raise UsageError(f"{archive} does not contain a backup folder")
    return folders[0]
