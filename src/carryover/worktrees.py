"""Capture of orchestrator worktrees as metadata, patches, and small archives.

Worktrees are not copied wholesale. For each project under the orchestrator's
workspaces directory the backup keeps ``_main-repo-info.json`` plus, per
worktree (a Resource Item), a manifest and up to four overlays that the
reconciler replays on the new machine.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from . import git, log, paths
from .models import MainRepoInfo, WorktreeManifest

if TYPE_CHECKING:
    from .runner import RunContext

CONTEXT_DIRNAME = ".context"
ENV_FILENAME = ".env"


@dataclass(frozen=True)
class ItemArtifacts:
    """File names a single Resource Item uses inside its project folder.

    Example:
        >>> ItemArtifacts(Path("/b/ws/app"), "feature-x").patch.name
        'feature-x.patch'
    """

    ws_dir: Path
    name: str

    @property
    def manifest(self) -> Path:
        return self.ws_dir / f"{self.name}.json"

    @property
    def patch(self) -> Path:
        return self.ws_dir / f"{self.name}.patch"

    @property
    def untracked_list(self) -> Path:
        return self.ws_dir / f"{self.name}.untracked"

    @property
    def untracked_archive(self) -> Path:
        return self.ws_dir / f"{self.name}-untracked.tar.gz"

    @property
    def env(self) -> Path:
        return self.ws_dir / f"{self.name}.env"

    @property
    def context_archive(self) -> Path:
        return self.ws_dir / f"{self.name}-context.tar.gz"


@dataclass(frozen=True)
class ProjectSource:
    """A live orchestrator project discovered on the source machine."""

    name: str
    worktree_parent: Path
    main_repo: Path
    origin: str


def stash_patch_path(ws_dir: Path, index: int) -> Path:
    return ws_dir / f"_stash-{index}.patch"


def _is_worktree(path: Path) -> bool:
    return path.is_dir() and (path / ".git").exists()


def _fallback_main_repo(home: Path, origin: str) -> Path | None:
    name = git.repo_basename(origin)
    github = home / "GitHub"
    candidates = [github / name]
    if github.is_dir():
        candidates.extend(sorted(owner / name for owner in github.iterdir() if owner.is_dir()))
    for candidate in candidates:
        if (candidate / ".git").is_dir():
            return candidate
    return None


def discover_projects(ctx: RunContext, workspaces_root: Path) -> list[ProjectSource]:
    """Find projects under ``workspaces_root`` and their main checkouts.

    Projects whose origin or main checkout cannot be determined are reported
    as warnings and left out.
    """
    projects: list[ProjectSource] = []
    if not workspaces_root.is_dir():
        return projects
    for ws_dir in sorted(p for p in workspaces_root.iterdir() if p.is_dir()):
        origin = None
        main_repo = None
        for sub in sorted(ws_dir.iterdir()):
            if not _is_worktree(sub):
                continue
            origin = git.git_origin_url(sub, git_path=ctx.git_path)
            if origin:
                main_repo = git.git_main_repo_root(sub, git_path=ctx.git_path)
                break
        if not origin:
            ctx.warn(
                "NO_REMOTE",
                f"Could not determine remote for workspace project: {ws_dir.name}",
                category="permanent",
            )
            continue
        if main_repo is None:
            main_repo = _fallback_main_repo(ctx.home, origin)
        if main_repo is None:
            ctx.warn(
                "MAIN_REPO_NOT_FOUND",
                f"Main repo not found for {ws_dir.name} (remote: {origin})",
                category="permanent",
            )
            continue
        projects.append(ProjectSource(ws_dir.name, ws_dir, main_repo, origin))
    return projects


def capture_project(ctx: RunContext, project: ProjectSource, backup_ws_dir: Path) -> int:
    """Write metadata and overlays for one project; return the item count."""
    files = ctx.files
    git_path = ctx.git_path
    files.make_dirs(backup_ws_dir)

    stashes = git.git_stash_list(project.main_repo, git_path=git_path)
    info = MainRepoInfo(
        remote_origin=project.origin,
        remote_heroku=git.git_remote_url(project.main_repo, git.HEROKU_REMOTE, git_path=git_path),
        main_branch=git.git_current_branch(project.main_repo, git_path=git_path) or "master",
        main_repo_path=str(project.main_repo),
        worktree_parent=str(project.worktree_parent),
        stash_count=len(stashes),
    )
    if not files.write_json(backup_ws_dir / paths.MAIN_REPO_INFO_FILENAME, info):
        ctx.error(
            "REPO_INFO_WRITE",
            f"Failed to write repo info for {project.name}: {files.last_error}",
            category="transient",
            suggestion=ctx.resume_hint(),
        )
        return 0

    if stashes:
        files.write_text(backup_ws_dir / paths.STASH_LIST_FILENAME, "\n".join(stashes) + "\n")
        for index in range(len(stashes)):
            patch = git.git_stash_patch(project.main_repo, index, git_path=git_path)
            if patch is None:
                ctx.warn("STASH_PATCH", f"Failed to export stash {index} for {project.name}")
                continue
            files.write_text(stash_patch_path(backup_ws_dir, index), patch)
        log.info(f"  Saved {len(stashes)} stash patches")

    count = 0
    for worktree in sorted(project.worktree_parent.iterdir()):
        if not worktree.is_dir():
            continue
        capture_item(ctx, project, worktree, backup_ws_dir)
        count += 1
    return count


def capture_item(
    ctx: RunContext, project: ProjectSource, worktree: Path, backup_ws_dir: Path
) -> None:
    files = ctx.files
    git_path = ctx.git_path
    artifacts = ItemArtifacts(backup_ws_dir, worktree.name)
    manifest = WorktreeManifest(
        name=worktree.name,
        branch=git.git_current_branch(worktree, git_path=git_path) or "",
        commit=git.git_rev_parse(worktree, "HEAD", git_path=git_path) or "",
        remote=git.git_origin_url(worktree, git_path=git_path) or project.origin,
        has_env=(worktree / ENV_FILENAME).is_file(),
        has_node_modules=(worktree / "node_modules").is_dir(),
    )
    files.write_json(artifacts.manifest, manifest)

    diff = git.git_diff_head(worktree, git_path=git_path)
    if diff.strip():
        files.write_text(artifacts.patch, diff)
        log.info(f"  {worktree.name}: saved uncommitted changes patch")

    untracked = git.git_untracked_files(worktree, git_path=git_path)
    if untracked:
        files.write_text(artifacts.untracked_list, "\n".join(untracked) + "\n")
        if not files.create_archive(artifacts.untracked_archive, worktree, untracked):
            ctx.warn(
                "UNTRACKED_TAR",
                f"Failed to archive untracked files for {worktree.name}: {files.last_error}",
            )

    if manifest.has_env and not files.copy_file(worktree / ENV_FILENAME, artifacts.env):
        ctx.error(
            "ENV_COPY",
            f"Failed to copy .env for {worktree.name}: {files.last_error}",
            suggestion=ctx.resume_hint(),
        )

    if (worktree / CONTEXT_DIRNAME).is_dir() and not files.create_archive(
        artifacts.context_archive, worktree, [CONTEXT_DIRNAME]
    ):
        ctx.warn("CONTEXT_TAR", f"Failed to archive .context for {worktree.name}")

    branch = manifest.branch or "detached"
    log.info(f"  {worktree.name}: {branch} @ {manifest.commit[:7] or 'unknown'}")


def load_repo_info(ws_dir: Path) -> MainRepoInfo:
    """Parse ``_main-repo-info.json``.

    Raises:
        ValueError: when the file is unreadable or does not validate.
    """
    path = ws_dir / paths.MAIN_REPO_INFO_FILENAME
    try:
        return MainRepoInfo.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as exc:
        raise ValueError(f"{path}: {exc}") from exc


def item_manifests(ws_dir: Path) -> list[Path]:
    """Return per-item manifest files, skipping ``_``-prefixed project metadata."""
    return sorted(
        path for path in ws_dir.glob("*.json") if not path.name.startswith("_")
    )


def load_item(path: Path) -> WorktreeManifest:
    try:
        return WorktreeManifest.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as exc:
        raise ValueError(f"{path}: {exc}") from exc


def stash_patches(ws_dir: Path) -> list[Path]:
    return sorted(ws_dir.glob("_stash-*.patch"))
