"""Dry-run aware filesystem and command primitives.

Every write a step performs goes through ``FileOps``. In dry-run mode each
primitive prints ``[dry-run] <operation>`` and reports success without
touching the filesystem; otherwise it performs the operation and returns
whether it succeeded. Primitives never raise for I/O failures; the reason is
kept in ``last_error`` for the caller to record.
"""

from __future__ import annotations

import json
import os
import shutil
import tarfile
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel

from . import exec as exec_util
from . import log
from .paths import pre_restore_path


class FileOps:
    """Mutating primitives switched by a single run-wide dry-run flag."""

    def __init__(self, *, dry_run: bool) -> None:
        self.dry_run = dry_run
        self.last_error: str | None = None

    def _announce(self, description: str) -> bool:
        log.dry_run(description)
        self.last_error = None
        return True

    def _fail(self, description: str, exc: BaseException | str) -> bool:
        self.last_error = f"{description}: {exc}"
        log.debug(self.last_error)
        return False

    def _ok(self) -> bool:
        self.last_error = None
        return True

    def make_dirs(self, *paths: Path) -> bool:
        if self.dry_run:
            return self._announce("mkdir -p " + " ".join(str(path) for path in paths))
        for path in paths:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                return self._fail(f"mkdir {path}", exc)
        return self._ok()

    def copy_file(self, src: Path, dst: Path) -> bool:
        """Copy one file; ``dst`` may be a directory or the full target path."""
        if self.dry_run:
            return self._announce(f"cp {src} {dst}")
        try:
            target = dst / src.name if dst.is_dir() else dst
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, target)
        except OSError as exc:
            return self._fail(f"cp {src}", exc)
        return self._ok()

    def copy_tree(self, src: Path, dst: Path, *, follow_symlinks: bool = False) -> bool:
        """Copy a directory to ``dst``, merging into anything already there."""
        flag = "-RL" if follow_symlinks else "-R"
        if self.dry_run:
            return self._announce(f"cp {flag} {src} {dst}")
        try:
            shutil.copytree(src, dst, symlinks=not follow_symlinks, dirs_exist_ok=True)
        except (OSError, shutil.Error) as exc:
            return self._fail(f"cp {flag} {src}", exc)
        return self._ok()

    def copy_contents(self, src: Path, dst: Path, *, follow_symlinks: bool = False) -> bool:
        """Copy every entry of ``src`` into ``dst`` (``cp -R src/* dst/``)."""
        if self.dry_run:
            return self._announce(f"cp -R {src}/* {dst}/")
        try:
            dst.mkdir(parents=True, exist_ok=True)
            for child in sorted(src.iterdir()):
                target = dst / child.name
                if child.is_dir() and (follow_symlinks or not child.is_symlink()):
                    shutil.copytree(
                        child, target, symlinks=not follow_symlinks, dirs_exist_ok=True
                    )
                else:
                    shutil.copy2(child, target, follow_symlinks=follow_symlinks)
        except (OSError, shutil.Error) as exc:
            return self._fail(f"cp -R {src}/*", exc)
        return self._ok()

    def symlink(self, target: Path, link: Path) -> bool:
        """Point ``link`` at ``target``.

        An existing symlink or file at ``link`` is replaced. A real directory
        is moved aside to ``<link>.pre-restore`` first; when that sidecar is
        already taken the link is refused and ``last_error`` says why.
        """
        real_dir = link.is_dir() and not link.is_symlink()
        sidecar = pre_restore_path(link)
        if real_dir and (sidecar.exists() or sidecar.is_symlink()):
            return self._fail(
                f"ln -sf {target} {link}",
                f"{link} is a directory and {sidecar} already exists",
            )
        if self.dry_run:
            if real_dir:
                self._announce(f"mv {link} {sidecar}")
            return self._announce(f"ln -sf {target} {link}")
        try:
            link.parent.mkdir(parents=True, exist_ok=True)
            if real_dir:
                link.rename(sidecar)
                log.info(f"  Moved existing {link} -> {sidecar}")
            elif link.is_symlink() or link.is_file():
                link.unlink()
            link.symlink_to(target)
        except OSError as exc:
            return self._fail(f"ln -sf {target} {link}", exc)
        return self._ok()

    def chmod(self, path: Path, mode: int) -> bool:
        if self.dry_run:
            return self._announce(f"chmod {mode:o} {path}")
        try:
            os.chmod(path, mode)
        except OSError as exc:
            return self._fail(f"chmod {mode:o} {path}", exc)
        return self._ok()

    def create_archive(
        self,
        archive: Path,
        root: Path,
        members: Iterable[str],
        *,
        exclude: Iterable[str] = (),
        skip: Iterable[Path] = (),
    ) -> bool:
        """Write a gzipped tarball of ``members`` (relative to ``root``).

        Entries whose path contains a component listed in ``exclude``, or
        that live under one of the absolute ``skip`` paths, are left out.
        """
        member_list = list(members)
        if self.dry_run:
            return self._announce(f"tar -czf {archive} -C {root} {' '.join(member_list)}")
        excluded = set(exclude)
        skipped = [path.resolve() for path in skip]

        def _filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
            if excluded.intersection(Path(info.name).parts):
                return None
            if skipped:
                absolute = (root / info.name).resolve()
                if any(absolute.is_relative_to(path) for path in skipped):
                    return None
            return info

        try:
            archive.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "w:gz") as handle:
                for member in member_list:
                    handle.add(root / member, arcname=member, filter=_filter)
        except (OSError, tarfile.TarError) as exc:
            archive.unlink(missing_ok=True)
            return self._fail(f"tar -czf {archive}", exc)
        return self._ok()

    def extract_archive(self, archive: Path, dest: Path) -> bool:
        if self.dry_run:
            return self._announce(f"tar -xzf {archive} -C {dest}")
        try:
            dest.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "r:*") as handle:
                handle.extractall(dest, filter="data")
        except (OSError, tarfile.TarError) as exc:
            return self._fail(f"tar -xzf {archive}", exc)
        return self._ok()

    def write_text(self, path: Path, content: str, *, mode: int | None = None) -> bool:
        if self.dry_run:
            return self._announce(f"write {path}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            if mode is not None:
                os.chmod(path, mode)
        except OSError as exc:
            return self._fail(f"write {path}", exc)
        return self._ok()

    def write_json(self, path: Path, payload: dict | list | BaseModel) -> bool:
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        return self.write_text(path, json.dumps(payload, indent=2) + "\n")

    def remove_tree(self, path: Path) -> bool:
        if self.dry_run:
            return self._announce(f"rm -rf {path}")
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
        except OSError as exc:
            return self._fail(f"rm -rf {path}", exc)
        return self._ok()

    def backup_existing(self, target: Path) -> bool:
        """Keep ``target`` as ``<target>.pre-restore`` before it is overwritten.

        Nothing is written in dry-run mode.
        """
        if not target.is_file():
            return self._ok()
        sidecar = pre_restore_path(target)
        if self.dry_run:
            return self._announce(f"cp {target} {sidecar}")
        try:
            shutil.copy2(target, sidecar)
        except OSError as exc:
            return self._fail(f"cp {target} {sidecar}", exc)
        log.info(f"  Backed up existing {target} -> {sidecar}")
        return self._ok()

    def run(
        self,
        cmd: list[str],
        cwd: Path | None = None,
        *,
        interactive: bool = False,
    ) -> exec_util.CommandResult | None:
        """Run a mutating external command, or announce it in dry-run mode.

        Returns ``None`` when the executable is missing.
        """
        if self.dry_run:
            self._announce(exec_util.describe(cmd))
            return exec_util.CommandResult(argv=tuple(cmd), returncode=0, stdout="", stderr="")
        if interactive:
            result = exec_util.run_interactive(cmd, cwd=cwd)
        else:
            result = exec_util.try_run_command(cmd, cwd=cwd)
        if result is None:
            self._fail(exec_util.describe(cmd), f"command not found: {cmd[0]}")
        elif not result.ok:
            self._fail(exec_util.describe(cmd), result.detail())
        else:
            self._ok()
        return result
