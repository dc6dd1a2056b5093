"""Rebuild captured worktrees from their manifests.

For each project the main checkout is cloned when missing and its remotes
refreshed. Each Resource Item is then materialized by the first strategy
that works (local branch, remote-tracking branch, detached commit) and the
captured overlays are replayed on top. One bad project or item never stops
the others.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, Sequence

from . import git, log, paths, worktrees
from .models import MainRepoInfo
from .shim import FileOps

if TYPE_CHECKING:
    from .runner import RunContext

PRIVATE_MODE = 0o600


@dataclass(frozen=True)
class ResourceItem:
    """A worktree to rebuild, as recorded at capture time."""

    name: str
    target: Path
    branch: str
    commit: str
    origin: str


@dataclass(frozen=True)
class StrategyOutcome:
    ok: bool
    strategy: str
    detail: str = ""
    degraded: bool = False


class Strategy(Protocol):
    """One way of materializing a Resource Item inside a main checkout."""

    name: str

    def attempt(self, item: ResourceItem, repo: Path) -> StrategyOutcome: ...


class _GitStrategy:
    name = "git"

    def __init__(self, files: FileOps, *, git_path: str | None = None) -> None:
        self.files = files
        self.git_path = git_path

    def _run(self, cmd: list[str], *, degraded: bool = False) -> StrategyOutcome:
        result = self.files.run(cmd)
        if result is not None and result.ok:
            return StrategyOutcome(True, self.name, degraded=degraded)
        detail = self.files.last_error or "git worktree add failed"
        return StrategyOutcome(False, self.name, detail)


class LocalBranchStrategy(_GitStrategy):
    """Attach an existing local branch with the recorded name."""

    name = "local_branch"

    def attempt(self, item: ResourceItem, repo: Path) -> StrategyOutcome:
        if not item.branch:
            return StrategyOutcome(False, self.name, "no branch recorded")
        if not git.git_ref_exists(repo, f"refs/heads/{item.branch}", git_path=self.git_path):
            return StrategyOutcome(False, self.name, f"no local branch {item.branch}")
        return self._run(
            git.worktree_add_command(repo, item.target, item.branch, git_path=self.git_path)
        )


class RemoteBranchStrategy(_GitStrategy):
    """Create a local branch tracking ``origin/<branch>``."""

    name = "remote_branch"

    def attempt(self, item: ResourceItem, repo: Path) -> StrategyOutcome:
        if not item.branch:
            return StrategyOutcome(False, self.name, "no branch recorded")
        ref = f"refs/remotes/origin/{item.branch}"
        if not git.git_ref_exists(repo, ref, git_path=self.git_path):
            return StrategyOutcome(False, self.name, f"branch {item.branch} not found on remote")
        return self._run(
            git.worktree_add_tracking_command(
                repo, item.target, item.branch, git_path=self.git_path
            )
        )


class DetachedCommitStrategy(_GitStrategy):
    """Check out the recorded commit on a detached HEAD (degraded)."""

    name = "detached_commit"

    def attempt(self, item: ResourceItem, repo: Path) -> StrategyOutcome:
        if not item.commit:
            return StrategyOutcome(False, self.name, "no commit recorded")
        if not git.git_commit_exists(repo, item.commit, git_path=self.git_path):
            return StrategyOutcome(False, self.name, f"commit {item.commit} not found")
        return self._run(
            git.worktree_add_detached_command(
                repo, item.target, item.commit, git_path=self.git_path
            ),
            degraded=True,
        )


def default_strategies(files: FileOps, *, git_path: str | None = None) -> list[Strategy]:
    return [
        LocalBranchStrategy(files, git_path=git_path),
        RemoteBranchStrategy(files, git_path=git_path),
        DetachedCommitStrategy(files, git_path=git_path),
    ]


@dataclass
class ReconcileReport:
    """Per-run tallies, mostly for the console summary and tests."""

    projects: int = 0
    created: list[str] = field(default_factory=list)
    detached: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    stash_patches: int = 0


class WorktreeReconciler:
    def __init__(
        self, ctx: RunContext, *, strategies: Sequence[Strategy] | None = None
    ) -> None:
        self.ctx = ctx
        self.files = ctx.files
        self.git_path = ctx.git_path
        self.strategies = list(
            strategies
            if strategies is not None
            else default_strategies(ctx.files, git_path=ctx.git_path)
        )
        self.report = ReconcileReport()

    def reconcile_all(self, workspaces_backup: Path) -> ReconcileReport:
        """Reconcile every captured project under ``conductor/workspaces``."""
        if not workspaces_backup.is_dir():
            self.ctx.warn(
                "NO_WORKSPACES",
                "No conductor/workspaces directory found in backup",
                category="permanent",
            )
            return self.report
        for ws_dir in sorted(p for p in workspaces_backup.iterdir() if p.is_dir()):
            if (ws_dir / paths.MAIN_REPO_INFO_FILENAME).is_file():
                self.reconcile_project(ws_dir)
        return self.report

    def reconcile_project(self, ws_dir: Path) -> None:
        ctx = self.ctx
        try:
            info = worktrees.load_repo_info(ws_dir)
        except ValueError as exc:
            ctx.error("REPO_INFO_INVALID", f"Unreadable repo info for {ws_dir.name}: {exc}")
            return
        self.report.projects += 1
        main_repo = Path(info.main_repo_path)
        parent = Path(info.worktree_parent)
        log.info(f"  Processing {ws_dir.name}...")

        if self.files.dry_run and not (main_repo / ".git").exists():
            log.dry_run(f"Would clone {ws_dir.name} from {info.remote_origin} into {main_repo}")
            for manifest in worktrees.item_manifests(ws_dir):
                log.dry_run(f"Would create worktree {parent / manifest.stem}")
            return

        if not self.ensure_main_repo(ws_dir.name, info, main_repo):
            return
        fetch = self.files.run(git.fetch_all_command(main_repo, git_path=self.git_path))
        if fetch is None or not fetch.ok:
            ctx.warn(
                "FETCH_FAILED",
                f"Failed to fetch for {ws_dir.name}: {self.files.last_error}",
                suggestion=ctx.resume_hint(),
            )
        self.files.make_dirs(parent)

        for manifest_path in worktrees.item_manifests(ws_dir):
            try:
                manifest = worktrees.load_item(manifest_path)
            except ValueError as exc:
                ctx.error("MANIFEST_INVALID", f"Unreadable worktree manifest: {exc}")
                self.report.failed.append(manifest_path.stem)
                continue
            item = ResourceItem(
                name=manifest.name,
                target=parent / manifest.name,
                branch=manifest.branch,
                commit=manifest.commit,
                origin=manifest.remote or info.remote_origin,
            )
            self.reconcile_item(item, main_repo, ws_dir)

        stashes = worktrees.stash_patches(ws_dir)
        if stashes:
            self.report.stash_patches += len(stashes)
            log.info(
                f"  NOTE: {len(stashes)} stashes were backed up as patch files in {ws_dir}."
            )
            log.info("  They are not applied automatically. To apply: git apply _stash-N.patch")

    def ensure_main_repo(self, project: str, info: MainRepoInfo, main_repo: Path) -> bool:
        """Clone the main checkout when it is missing; ``False`` stops the project."""
        if (main_repo / ".git").exists():
            return True
        log.info(f"  Cloning {project} from {info.remote_origin}...")
        self.files.make_dirs(main_repo.parent)
        result = self.files.run(
            git.clone_command(info.remote_origin, main_repo, git_path=self.git_path)
        )
        if result is None or not result.ok:
            self.ctx.error(
                "CLONE_FAILED",
                f"Failed to clone {project} from {info.remote_origin}: {self.files.last_error}",
                category="transient",
                suggestion=self.ctx.resume_hint(),
            )
            return False
        if info.remote_heroku:
            added = self.files.run(
                git.remote_add_command(
                    main_repo, git.HEROKU_REMOTE, info.remote_heroku, git_path=self.git_path
                )
            )
            if added is None or not added.ok:
                self.ctx.warn(
                    "REMOTE_ADD",
                    f"Failed to add heroku remote for {project}: {self.files.last_error}",
                )
        return True

    def materialize(self, item: ResourceItem, repo: Path) -> StrategyOutcome | None:
        """Try each strategy in order; return the first success."""
        for strategy in self.strategies:
            outcome = strategy.attempt(item, repo)
            if outcome.ok:
                return outcome
            log.debug(f"  {item.name}: {outcome.strategy} failed: {outcome.detail}")
        return None

    def reconcile_item(self, item: ResourceItem, repo: Path, ws_dir: Path) -> None:
        ctx = self.ctx
        if item.target.is_dir():
            log.info(f"  {item.name}: already exists, skipping")
            self.report.skipped.append(item.name)
            return

        label = item.branch or item.commit[:7] or "unknown"
        log.info(f"  Creating worktree: {item.name} -> {label}")
        outcome = self.materialize(item, repo)
        if outcome is None:
            ctx.error(
                "WORKTREE_FAILED",
                f"Could not create worktree for {item.name}",
                suggestion=f"Check that {item.commit or item.branch} exists in {item.origin}",
            )
            self.report.failed.append(item.name)
            return
        if outcome.degraded:
            ctx.warn(
                "WORKTREE_DETACHED",
                f"{item.name}: created at detached HEAD {item.commit} "
                f"(branch {item.branch or '(none)'} not found on remote)",
                category="permanent",
                suggestion=f"Create a branch in {item.target} if work continues there",
            )
            self.report.detached.append(item.name)
        else:
            self.report.created.append(item.name)
        self.apply_overlays(item, worktrees.ItemArtifacts(ws_dir, item.name))

    def apply_overlays(self, item: ResourceItem, artifacts: worktrees.ItemArtifacts) -> None:
        """Replay patch, untracked files, ``.env`` and ``.context``; each is independent."""
        ctx = self.ctx
        files = self.files

        patch = artifacts.patch
        if patch.is_file() and patch.stat().st_size > 0:
            log.info(f"  {item.name}: applying uncommitted changes...")
            result = files.run(git.apply_patch_command(item.target, patch, git_path=self.git_path))
            if result is None or not result.ok:
                failed_copy = item.target / f"{patch.name}{paths.FAILED_PATCH_SUFFIX}"
                files.copy_file(patch, failed_copy)
                ctx.warn(
                    "PATCH_FAILED",
                    f"{item.name}: patch did not apply cleanly; saved as {failed_copy.name}",
                    category="permanent",
                    suggestion=f"Apply {failed_copy} by hand",
                )

        if artifacts.untracked_archive.is_file():
            log.info(f"  {item.name}: restoring untracked files...")
            if not files.extract_archive(artifacts.untracked_archive, item.target):
                ctx.warn(
                    "UNTRACKED_EXTRACT",
                    f"{item.name}: failed to extract untracked files: {files.last_error}",
                )

        if artifacts.env.is_file():
            env_target = item.target / worktrees.ENV_FILENAME
            if files.copy_file(artifacts.env, env_target) and files.chmod(env_target, PRIVATE_MODE):
                log.info(f"  {item.name}: .env restored")
            else:
                ctx.error(
                    "ENV_RESTORE",
                    f"{item.name}: failed to restore .env: {files.last_error}",
                    suggestion=ctx.resume_hint(),
                )

        if artifacts.context_archive.is_file() and not files.extract_archive(
            artifacts.context_archive, item.target
        ):
            ctx.warn(
                "CONTEXT_EXTRACT",
                f"{item.name}: failed to extract .context: {files.last_error}",
            )
