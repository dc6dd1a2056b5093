import json
import os
import stat
import tarfile
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from carryover.steps import capture
from tests.carryover.helpers import make_context, open_step, read_ledger, snapshot


def _seed_home(home: Path) -> None:
    claude = home / ".claude"
    (claude / "plans").mkdir(parents=True)
    (claude / "plans" / "p.md").write_text("plan\n", encoding="utf-8")
    (claude / "settings.json").write_text("{}\n", encoding="utf-8")
    (claude / "CLAUDE.md").write_text("# rules\n", encoding="utf-8")
    (home / ".ssh").mkdir()
    (home / ".ssh" / "id_ed25519").write_text("secret\n", encoding="utf-8")
    os.chmod(home / ".ssh" / "id_ed25519", 0o644)
    (home / ".zshrc").write_text("export EDITOR=vim\n", encoding="utf-8")
    project = home / "GitHub" / "app"
    (project / ".claude").mkdir(parents=True)
    (project / ".claude" / "settings.local.json").write_text("{}\n", encoding="utf-8")
    (project / "node_modules" / "dep").mkdir(parents=True)
    (project / "node_modules" / "dep" / "index.js").write_text("x", encoding="utf-8")
    (project / "main.py").write_text("print()\n", encoding="utf-8")


def _quiet_machine():
    return (
        patch("carryover.exec.command_available", return_value=False),
        patch("carryover.steps.capture.process_running", return_value=False),
        patch("carryover.steps.capture.resolve_cursor_cli", return_value=None),
    )


def test_parse_volta_list_prefers_defaults() -> None:
    text = (
        "runtime node@18.19.0\n"
        "runtime node@20.11.0 (default)\n"
        "package-manager npm@10.2.4 (default)\n"
        "package typescript@5.3.3 / tsc, tsserver / node@20.11.0 (default)\n"
        "package typescript@5.3.3 / tsc / node@18.19.0\n"
    )
    toolchain = capture.parse_volta_list(text)
    assert toolchain is not None
    assert toolchain.node_default == "20.11.0"
    assert toolchain.npm_default == "10.2.4"
    assert toolchain.global_packages == ["typescript@5.3.3"]


def test_parse_volta_list_without_node_is_none() -> None:
    assert capture.parse_volta_list("") is None
    assert capture.parse_volta_list("package-manager npm@10.2.4 (default)\n") is None
    toolchain = capture.parse_volta_list("runtime node@20.11.0\n")
    assert toolchain is not None
    assert toolchain.npm_default == "bundled"


def test_capture_walk_produces_a_restorable_backup() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        ctx = make_context(root, capture.CAPTURE_PIPELINE)
        _seed_home(ctx.home)
        tools, browser, cursor = _quiet_machine()

        with tools, browser, cursor:
            ctx.run_all()

        payload = read_ledger(ctx.ledger.path)
        statuses = {step["name"]: step["status"] for step in payload["steps"]}
        assert set(statuses.values()) == {"completed"}
        assert len(statuses) == 18

        backup = ctx.backup_dir
        assert (backup / "claude-code" / "settings.json").is_file()
        with tarfile.open(backup / "claude-code" / "plans.tar.gz") as handle:
            assert "plans/p.md" in handle.getnames()
        assert (backup / "shell-env" / "zshrc").read_text(encoding="utf-8") == "export EDITOR=vim\n"
        key = backup / "shell-env" / "ssh" / "id_ed25519"
        assert stat.S_IMODE(os.stat(key).st_mode) == 0o600

        project_paths = json.loads(
            (backup / "claude-code-project-configs" / "project-paths.json").read_text(encoding="utf-8")
        )
        assert project_paths == {"GitHub--app": "~/GitHub/app/.claude"}
        assert (backup / "claude-code-project-configs" / "GitHub--app" / "settings.local.json").is_file()

        with tarfile.open(backup / "github-repos" / "github.tar.gz") as handle:
            names = handle.getnames()
        assert "GitHub/app/main.py" in names
        assert not any("node_modules" in name for name in names)

        manifest = json.loads((backup / "manifest.json").read_text(encoding="utf-8"))
        assert manifest["file_count"] > 0
        assert manifest["sections"]["shell-env"] > 0
        assert "carryover restore" in (backup / "RESTORE-GUIDE.md").read_text(encoding="utf-8")


def test_capture_dry_run_leaves_home_and_backup_untouched(capsys: pytest.CaptureFixture[str]) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        ctx = make_context(root, capture.CAPTURE_PIPELINE, dry_run=True)
        _seed_home(ctx.home)
        home_before = snapshot(ctx.home)
        backup_before = snapshot(ctx.backup_dir)
        tools, browser, cursor = _quiet_machine()

        with tools, browser, cursor:
            ctx.run_all()

        assert snapshot(ctx.home) == home_before
        assert snapshot(ctx.backup_dir) == backup_before
        assert "[dry-run]" in capsys.readouterr().out
        assert read_ledger(ctx.ledger.path)["dry_run"] is True


def test_cursor_without_cli_or_extensions_dir_warns() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = make_context(Path(tmp), capture.CAPTURE_PIPELINE)
        user_dir = ctx.home / "Library" / "Application Support" / "Cursor" / "User"
        user_dir.mkdir(parents=True)
        (user_dir / "settings.json").write_text("{}", encoding="utf-8")
        open_step(ctx, "cursor_ide")

        with patch("carryover.steps.capture.resolve_cursor_cli", return_value=None):
            capture.cursor_ide(ctx)
        record = ctx.end_step()

        assert (ctx.backup_dir / "cursor-ide" / "settings.json").is_file()
        assert [issue.code for issue in record.warnings] == ["CURSOR_EXTENSIONS"]


def test_cursor_extension_listing_falls_back_to_extensions_dir() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = make_context(Path(tmp), capture.CAPTURE_PIPELINE)
        (ctx.home / "Library" / "Application Support" / "Cursor" / "User").mkdir(parents=True)
        for name in ("ms-python.python-2024.1", "esbenp.prettier-vscode-10.1"):
            (ctx.home / ".cursor" / "extensions" / name).mkdir(parents=True)
        open_step(ctx, "cursor_ide")

        with patch("carryover.steps.capture.resolve_cursor_cli", return_value=None):
            capture.cursor_ide(ctx)
        record = ctx.end_step()

        listing = (ctx.backup_dir / "cursor-ide" / "extensions.txt").read_text(encoding="utf-8")
        assert listing.splitlines() == ["esbenp.prettier-vscode-10.1", "ms-python.python-2024.1"]
        assert record.warnings == []


def test_running_browser_is_a_user_action_warning() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = make_context(Path(tmp), capture.CAPTURE_PIPELINE)
        profile = ctx.home / "Library" / "Application Support" / "Microsoft Edge" / "Profile 1"
        profile.mkdir(parents=True)
        (profile / "Bookmarks").write_text("{}", encoding="utf-8")
        open_step(ctx, "edge")

        with patch("carryover.steps.capture.process_running", return_value=True):
            capture.edge(ctx)
        record = ctx.end_step()

        assert record.status == "completed"
        assert record.warnings[0].code == "EDGE_RUNNING"
        assert record.warnings[0].category == "user_action"
        profiles = json.loads((ctx.backup_dir / "edge-browser" / "profiles.json").read_text(encoding="utf-8"))
        assert profiles == [{"name": "Profile 1", "encoded": "Profile_1"}]
        assert (ctx.backup_dir / "edge-browser" / "Profile_1" / "Bookmarks").is_file()


def test_unwritable_backup_location_fails_create_dirs_only() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = make_context(Path(tmp), capture.CAPTURE_PIPELINE, only="create_dirs")

        with patch.object(ctx.files, "make_dirs", return_value=False):
            ctx.run_all()

        steps = read_ledger(ctx.ledger.path)["steps"]
        assert len(steps) == 18
        failed = [step for step in steps if step["status"] == "failed"]
        assert [step["name"] for step in failed] == ["create_dirs"]
        error = failed[0]["errors"][0]
        assert error["code"] == "MKDIR_FAILED"
        assert error["suggestion"].startswith("Check that ")
