"""Git helper functions used to capture and rebuild worktrees."""

from pathlib import Path

from . import exec as exec_util

HEROKU_REMOTE = "heroku"


def _run_git_capture(
    cmd: list[str], *, cwd: Path | None = None
) -> exec_util.CommandResult | None:
    return exec_util.run_with_runner(
        exec_util.CommandRequest(
            argv=tuple(cmd),
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    )


def _stdout_or_none(result: exec_util.CommandResult | None) -> str | None:
    if result is None or result.returncode != 0:
        return None
    value = result.stdout.strip()
    return value or None


def strip_git_suffix(path: str) -> str:
    """Remove a trailing ``.git`` suffix from a path string.

    Args:
        path: Git URL or path.

    Returns:
        Path without a trailing ``.git``.

    Example:
        >>> strip_git_suffix("example/repo.git")
        'example/repo'
    """
    normalized = path.strip().rstrip("/")
    if normalized.lower().endswith(".git"):
        return normalized[: -len(".git")]
    return normalized


def repo_basename(origin: str) -> str:
    """Return the repository name encoded in an origin URL.

    Example:
        >>> repo_basename("git@github.com:org/widgets.git")
        'widgets'
    """
    tail = strip_git_suffix(origin).replace(":", "/").rsplit("/", 1)[-1]
    return tail


def git_command(args: list[str], *, git_path: str | None = None) -> list[str]:
    """Build a git command using an optional executable path."""
    resolved = git_path.strip() if isinstance(git_path, str) else ""
    if not resolved:
        resolved = "git"
    return [resolved, *args]


def repo_command(repo_dir: Path, args: list[str], *, git_path: str | None = None) -> list[str]:
    """Build a git command that runs against ``repo_dir`` via ``-C``.

    Example:
        >>> repo_command(Path("/r"), ["fetch", "--all"])
        ['git', '-C', '/r', 'fetch', '--all']
    """
    return git_command(["-C", str(repo_dir), *args], git_path=git_path)


def git_is_repo(repo_dir: Path, *, git_path: str | None = None) -> bool:
    """Return whether ``repo_dir`` is inside a git work tree."""
    result = _run_git_capture(
        repo_command(repo_dir, ["rev-parse", "--is-inside-work-tree"], git_path=git_path)
    )
    return _stdout_or_none(result) == "true"


def git_remote_url(
    repo_dir: Path, remote: str = "origin", *, git_path: str | None = None
) -> str | None:
    """Return the URL for a named remote.

    Args:
        repo_dir: Git repository directory.
        remote: Remote name.

    Returns:
        Remote URL string, or ``None`` if missing.
    """
    result = _run_git_capture(repo_command(repo_dir, ["remote", "get-url", remote], git_path=git_path))
    return _stdout_or_none(result)


def git_origin_url(repo_dir: Path, *, git_path: str | None = None) -> str | None:
    return git_remote_url(repo_dir, "origin", git_path=git_path)


def git_current_branch(repo_dir: Path, *, git_path: str | None = None) -> str | None:
    """Return the current branch name, or ``None`` on a detached HEAD."""
    result = _run_git_capture(repo_command(repo_dir, ["branch", "--show-current"], git_path=git_path))
    return _stdout_or_none(result)


def git_rev_parse(repo_dir: Path, ref: str, *, git_path: str | None = None) -> str | None:
    """Resolve a ref to a commit hash."""
    result = _run_git_capture(repo_command(repo_dir, ["rev-parse", ref], git_path=git_path))
    return _stdout_or_none(result)


def git_ref_exists(repo_dir: Path, ref: str, *, git_path: str | None = None) -> bool:
    """Check whether a git ref exists.

    Args:
        repo_dir: Git repository directory.
        ref: Ref name (e.g., ``refs/heads/main``).

    Returns:
        ``True`` if the ref exists.
    """
    result = _run_git_capture(
        repo_command(repo_dir, ["show-ref", "--verify", "--quiet", ref], git_path=git_path)
    )
    return result is not None and result.returncode == 0


def git_commit_exists(repo_dir: Path, commit: str, *, git_path: str | None = None) -> bool:
    """Return whether ``commit`` names a commit object in the repository."""
    if not commit:
        return False
    result = _run_git_capture(
        repo_command(repo_dir, ["cat-file", "-e", f"{commit}^{{commit}}"], git_path=git_path)
    )
    return result is not None and result.returncode == 0


def git_main_repo_root(worktree_dir: Path, *, git_path: str | None = None) -> Path | None:
    """Return the main checkout that owns a linked worktree.

    Resolves ``--git-common-dir`` and strips the trailing ``.git`` entry.
    """
    result = _run_git_capture(
        repo_command(
            worktree_dir,
            ["rev-parse", "--path-format=absolute", "--git-common-dir"],
            git_path=git_path,
        )
    )
    common = _stdout_or_none(result)
    if not common:
        return None
    common_dir = Path(common)
    root = common_dir.parent if common_dir.name == ".git" else common_dir
    if not root.is_dir():
        return None
    return root


def git_stash_list(repo_dir: Path, *, git_path: str | None = None) -> list[str]:
    """Return ``git stash list`` lines, newest first."""
    result = _run_git_capture(repo_command(repo_dir, ["stash", "list"], git_path=git_path))
    if result is None or result.returncode != 0:
        return []
    return [line for line in result.stdout.splitlines() if line.strip()]


def git_stash_patch(repo_dir: Path, index: int, *, git_path: str | None = None) -> str | None:
    """Return the patch text for ``stash@{index}``."""
    result = _run_git_capture(
        repo_command(repo_dir, ["stash", "show", "-p", f"stash@{{{index}}}"], git_path=git_path)
    )
    if result is None or result.returncode != 0:
        return None
    return result.stdout


def git_diff_head(repo_dir: Path, *, git_path: str | None = None) -> str:
    """Return uncommitted tracked changes relative to ``HEAD``."""
    result = _run_git_capture(repo_command(repo_dir, ["diff", "HEAD"], git_path=git_path))
    if result is None or result.returncode != 0:
        return ""
    return result.stdout


def git_untracked_files(repo_dir: Path, *, git_path: str | None = None) -> list[str]:
    """Return untracked, non-ignored paths, leaving out ``node_modules/``."""
    result = _run_git_capture(
        repo_command(repo_dir, ["ls-files", "--others", "--exclude-standard"], git_path=git_path)
    )
    if result is None or result.returncode != 0:
        return []
    return [
        line
        for line in result.stdout.splitlines()
        if line.strip() and not line.startswith("node_modules/")
    ]


# Mutating commands are returned as argv so callers can route them through
# the dry-run aware file operations.


def clone_command(origin: str, dest: Path, *, git_path: str | None = None) -> list[str]:
    return git_command(["clone", origin, str(dest)], git_path=git_path)


def remote_add_command(
    repo_dir: Path, name: str, url: str, *, git_path: str | None = None
) -> list[str]:
    return repo_command(repo_dir, ["remote", "add", name, url], git_path=git_path)


def fetch_all_command(repo_dir: Path, *, git_path: str | None = None) -> list[str]:
    """Build the fetch that refreshes (and prunes) every remote-tracking ref.

    Example:
        >>> fetch_all_command(Path("/r"))[-2:]
        ['--all', '--prune']
    """
    return repo_command(repo_dir, ["fetch", "--all", "--prune"], git_path=git_path)


def worktree_add_command(
    repo_dir: Path, target: Path, branch: str, *, git_path: str | None = None
) -> list[str]:
    return repo_command(repo_dir, ["worktree", "add", str(target), branch], git_path=git_path)


def worktree_add_tracking_command(
    repo_dir: Path,
    target: Path,
    branch: str,
    *,
    remote: str = "origin",
    git_path: str | None = None,
) -> list[str]:
    return repo_command(
        repo_dir,
        ["worktree", "add", "-b", branch, str(target), f"{remote}/{branch}"],
        git_path=git_path,
    )


def worktree_add_detached_command(
    repo_dir: Path, target: Path, commit: str, *, git_path: str | None = None
) -> list[str]:
    return repo_command(
        repo_dir, ["worktree", "add", "--detach", str(target), commit], git_path=git_path
    )


def apply_patch_command(
    worktree_dir: Path, patch_file: Path, *, git_path: str | None = None
) -> list[str]:
    return repo_command(
        worktree_dir, ["apply", "--allow-empty", str(patch_file)], git_path=git_path
    )
