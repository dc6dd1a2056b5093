import tempfile
from pathlib import Path

import pytest

import carryover.git as git_util
from tests.carryover.helpers import GIT_AVAILABLE, git, init_repo

needs_git = pytest.mark.skipif(not GIT_AVAILABLE, reason="git is not installed")


def test_git_command_uses_configured_executable() -> None:
    assert git_util.git_command(["status"], git_path=" /opt/bin/git ") == ["/opt/bin/git", "status"]
    assert git_util.git_command(["status"], git_path="") == ["git", "status"]


def test_worktree_commands() -> None:
    repo = Path("/r")
    target = Path("/w/feature")
    assert git_util.worktree_add_tracking_command(repo, target, "feature")[-5:] == [
        "add",
        "-b",
        "feature",
        "/w/feature",
        "origin/feature",
    ]
    assert git_util.worktree_add_detached_command(repo, target, "abc")[-3:] == [
        "--detach",
        "/w/feature",
        "abc",
    ]
    assert git_util.clone_command("git@github.com:o/r.git", repo) == [
        "git",
        "clone",
        "git@github.com:o/r.git",
        "/r",
    ]


def test_repo_basename_handles_url_shapes() -> None:
    assert git_util.repo_basename("https://github.com/org/widgets.git") == "widgets"
    assert git_util.repo_basename("git@github.com:org/widgets") == "widgets"
    assert git_util.repo_basename("/srv/git/widgets.git/") == "widgets"


@needs_git
def test_ref_and_commit_queries() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        repo = init_repo(Path(tmp) / "repo")
        head = git(repo, "rev-parse", "HEAD")

        assert git_util.git_is_repo(repo)
        assert not git_util.git_is_repo(Path(tmp))
        assert git_util.git_current_branch(repo) == "main"
        assert git_util.git_rev_parse(repo, "HEAD") == head
        assert git_util.git_ref_exists(repo, "refs/heads/main")
        assert not git_util.git_ref_exists(repo, "refs/heads/nope")
        assert git_util.git_commit_exists(repo, head)
        assert not git_util.git_commit_exists(repo, "0" * 40)
        assert not git_util.git_commit_exists(repo, "")
        assert git_util.git_origin_url(repo) is None


@needs_git
def test_main_repo_root_resolves_linked_worktree() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        repo = init_repo(root / "repo")
        worktree = root / "workspaces" / "feature"
        git(repo, "worktree", "add", "-q", "-b", "feature", str(worktree))

        resolved = git_util.git_main_repo_root(worktree)
        assert resolved is not None
        assert resolved.resolve() == repo.resolve()
        assert git_util.git_current_branch(worktree) == "feature"


@needs_git
def test_changes_untracked_and_stashes() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        repo = init_repo(Path(tmp) / "repo")
        (repo / "README.md").write_text("changed\n", encoding="utf-8")
        (repo / "notes.txt").write_text("new\n", encoding="utf-8")
        (repo / "node_modules" / "dep").mkdir(parents=True)
        (repo / "node_modules" / "dep" / "index.js").write_text("x", encoding="utf-8")

        assert "+changed" in git_util.git_diff_head(repo)
        assert git_util.git_untracked_files(repo) == ["notes.txt"]

        git(repo, "stash", "-q")
        stashes = git_util.git_stash_list(repo)
        assert len(stashes) == 1
        patch = git_util.git_stash_patch(repo, 0)
        assert patch is not None and "+changed" in patch
        assert git_util.git_stash_patch(repo, 5) is None
        assert git_util.git_diff_head(repo) == ""
