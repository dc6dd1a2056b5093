"""Copy helpers shared by capture and restore step bodies.

Each helper checks its source, goes through the run's ``FileOps`` and records
the outcome on the open step. A missing optional source is not a failure: it
is logged at debug level and skipped. Failures on best-effort data become
warnings; ``required=True`` turns them into errors.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from . import exec as exec_util
from . import log

if TYPE_CHECKING:
    from .runner import RunContext


def _record_failure(
    ctx: RunContext, code: str, message: str, *, required: bool
) -> None:
    if required:
        ctx.error(code, message, category="transient", suggestion=ctx.resume_hint())
    else:
        ctx.warn(code, message)


def _source_missing(src: Path, *, is_dir: bool = False) -> bool:
    present = src.is_dir() if is_dir else src.is_file()
    if not present:
        log.debug(f"  not found, skipping: {src}")
    return not present


def copy_file(
    ctx: RunContext,
    src: Path,
    dst: Path,
    *,
    mode: int | None = None,
    backup: bool = False,
    required: bool = False,
) -> bool:
    """Copy one file, optionally keeping the old target and tightening its mode."""
    if _source_missing(src):
        return False
    files = ctx.files
    target = dst / src.name if dst.is_dir() else dst
    if backup and not files.backup_existing(target):
        ctx.warn("PRE_RESTORE_BACKUP", f"Could not keep a copy of {target}: {files.last_error}")
    if not files.copy_file(src, target):
        _record_failure(ctx, "COPY_FAILED", f"Failed to copy {src}: {files.last_error}", required=required)
        return False
    if mode is not None and not files.chmod(target, mode):
        ctx.warn("CHMOD", f"Failed to set mode {mode:o} on {target}: {files.last_error}")
    return True


def copy_files(ctx: RunContext, src_dir: Path, names: Iterable[str], dst: Path, **kwargs) -> int:
    copied = 0
    for name in names:
        if copy_file(ctx, src_dir / name, dst / name, **kwargs):
            copied += 1
    return copied


def copy_tree(
    ctx: RunContext,
    src: Path,
    dst: Path,
    *,
    follow_symlinks: bool = False,
    contents: bool = False,
    required: bool = False,
) -> bool:
    """Copy a directory to ``dst`` (or its entries into ``dst`` when ``contents``)."""
    if _source_missing(src, is_dir=True):
        return False
    files = ctx.files
    if contents:
        ok = files.copy_contents(src, dst, follow_symlinks=follow_symlinks)
    else:
        ok = files.copy_tree(src, dst, follow_symlinks=follow_symlinks)
    if not ok:
        _record_failure(ctx, "COPY_FAILED", f"Failed to copy {src}: {files.last_error}", required=required)
    return ok


def archive_dir(
    ctx: RunContext,
    root: Path,
    name: str,
    archive: Path,
    *,
    exclude: Iterable[str] = (),
    skip: Iterable[Path] = (),
    required: bool = False,
) -> bool:
    """Pack ``root/name`` into ``archive`` as ``name/...``."""
    if _source_missing(root / name, is_dir=True):
        return False
    log.info(f"  Compressing {name}...")
    files = ctx.files
    if not files.create_archive(archive, root, [name], exclude=exclude, skip=skip):
        _record_failure(
            ctx, "ARCHIVE_FAILED", f"Failed to archive {root / name}: {files.last_error}", required=required
        )
        return False
    return True


def extract(ctx: RunContext, archive: Path, dest: Path, *, required: bool = False) -> bool:
    if _source_missing(archive):
        return False
    log.info(f"  Extracting {archive.name}...")
    files = ctx.files
    if not files.extract_archive(archive, dest):
        _record_failure(
            ctx, "EXTRACT_FAILED", f"Failed to extract {archive.name}: {files.last_error}", required=required
        )
        return False
    return True


def capture_output(
    ctx: RunContext, cmd: list[str], dst: Path, *, code: str, required: bool = False
) -> bool:
    """Run a read-only command and store its stdout in ``dst``."""
    if ctx.dry_run:
        return ctx.files.run(cmd) is not None and ctx.files.write_text(dst, "")
    result = exec_util.try_run_command(cmd)
    if result is None or not result.ok:
        detail = "command not found" if result is None else result.detail()
        _record_failure(ctx, code, f"{exec_util.describe(cmd)} failed: {detail}", required=required)
        return False
    if not ctx.files.write_text(dst, result.stdout):
        _record_failure(ctx, code, f"Failed to write {dst}: {ctx.files.last_error}", required=required)
        return False
    return True


def run_tool(ctx: RunContext, cmd: list[str], *, code: str, message: str) -> bool:
    """Run a mutating tool through the dry-run shim; failures are warnings."""
    result = ctx.files.run(cmd)
    if result is None or not result.ok:
        ctx.warn(code, f"{message}: {ctx.files.last_error}")
        return False
    return True


def export_plist(ctx: RunContext, plist: Path, xml: Path, *, code: str) -> bool:
    """Convert a binary preference plist into an XML copy in the backup."""
    if _source_missing(plist):
        return False
    return run_tool(
        ctx,
        ["plutil", "-convert", "xml1", "-o", str(xml), str(plist)],
        code=code,
        message=f"Failed to export {plist.name}",
    )


def import_plist(ctx: RunContext, xml: Path, plist: Path, *, code: str) -> bool:
    """Install an XML plist from the backup and convert it back to binary."""
    if not copy_file(ctx, xml, plist, backup=True):
        return False
    if exec_util.command_available("plutil") or ctx.dry_run:
        run_tool(
            ctx,
            ["plutil", "-convert", "binary1", str(plist)],
            code=code,
            message=f"Failed to convert {plist.name}",
        )
    return True
