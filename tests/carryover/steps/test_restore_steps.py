import json
import os
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from carryover.runner import Pipeline, StepDefinition
from carryover.steps import restore
from tests.carryover.helpers import make_context, open_step, read_ledger


def _context(tmp: Path, step: str, **kwargs):
    ctx = make_context(tmp, restore.RESTORE_PIPELINE, **kwargs)
    open_step(ctx, step)
    return ctx


def test_shell_env_keeps_pre_restore_copies_and_tightens_modes() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "shell_env")
        source = ctx.backup_dir / "shell-env"
        (source / "ssh").mkdir(parents=True)
        (source / "zshrc").write_text("export FROM=backup\n", encoding="utf-8")
        (source / "ssh" / "id_ed25519").write_text("secret\n", encoding="utf-8")
        (source / "ssh" / "known_hosts").write_text("github.com\n", encoding="utf-8")
        (source / "npmrc").write_text("//registry/:_authToken=x\n", encoding="utf-8")
        (ctx.home / ".zshrc").write_text("export FROM=target\n", encoding="utf-8")

        restore.shell_env(ctx)
        record = ctx.end_step()

        home = ctx.home
        assert record.status == "completed"
        assert (home / ".zshrc").read_text(encoding="utf-8") == "export FROM=backup\n"
        assert (home / ".zshrc.pre-restore").read_text(encoding="utf-8") == "export FROM=target\n"
        assert stat.S_IMODE(os.stat(home / ".ssh").st_mode) == 0o700
        assert stat.S_IMODE(os.stat(home / ".ssh" / "id_ed25519").st_mode) == 0o600
        assert stat.S_IMODE(os.stat(home / ".npmrc").st_mode) == 0o600
        assert (home / ".ssh" / "known_hosts").is_file()
        assert not (home / ".gitconfig").exists()


def test_volta_installs_recorded_toolchain(capsys: pytest.CaptureFixture[str]) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "volta", dry_run=True)
        record_file = ctx.backup_dir / "volta" / "global-packages.json"
        record_file.parent.mkdir(parents=True)
        record_file.write_text(
            json.dumps(
                {"node_default": "20.11.0", "npm_default": "bundled", "global_packages": ["pnpm@8.15.1"]}
            ),
            encoding="utf-8",
        )

        restore.volta(ctx)
        ctx.end_step()

        out = capsys.readouterr().out
        assert "[dry-run] volta install node@20.11.0" in out
        assert "[dry-run] volta install pnpm@8.15.1" in out
        assert "npm@" not in out


def test_volta_without_record_is_a_permanent_warning() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "volta")
        restore.volta(ctx)
        record = ctx.end_step()
        assert record.warnings[0].code == "VOLTA_UNAVAILABLE"
        assert record.warnings[0].category == "permanent"


def test_project_configs_skip_missing_parents() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "project_configs")
        source = ctx.backup_dir / "claude-code-project-configs"
        (source / "GitHub--app").mkdir(parents=True)
        (source / "GitHub--app" / "settings.local.json").write_text("{}", encoding="utf-8")
        (source / "GitHub--gone").mkdir()
        (source / "GitHub--gone" / "settings.local.json").write_text("{}", encoding="utf-8")
        (source / "project-paths.json").write_text(
            json.dumps({"GitHub--app": "~/GitHub/app/.claude", "GitHub--gone": "~/GitHub/gone/.claude"}),
            encoding="utf-8",
        )
        (ctx.home / "GitHub" / "app").mkdir(parents=True)

        restore.project_configs(ctx)
        ctx.end_step()

        assert (ctx.home / "GitHub" / "app" / ".claude" / "settings.local.json").is_file()
        assert not (ctx.home / "GitHub" / "gone").exists()


def test_claude_skills_link_to_shared_agents() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "claude_code")
        backup = ctx.backup_dir
        (backup / "claude-code" / "skills" / "shared").mkdir(parents=True)
        (backup / "claude-code" / "skills" / "own").mkdir(parents=True)
        (backup / "claude-code" / "skills" / "own" / "SKILL.md").write_text("own", encoding="utf-8")
        (backup / "claude-code" / "settings.json").write_text("{}", encoding="utf-8")
        (backup / "shared-agents" / "skills" / "shared").mkdir(parents=True)
        (backup / "shared-agents" / "skills" / "shared" / "SKILL.md").write_text("shared", encoding="utf-8")

        restore.claude_code(ctx)
        record = ctx.end_step()

        skills = ctx.home / ".claude" / "skills"
        assert record.status == "completed"
        assert (ctx.home / ".claude" / "settings.json").is_file()
        assert (skills / "shared").is_symlink()
        assert (skills / "shared" / "SKILL.md").read_text(encoding="utf-8") == "shared"
        assert not (skills / "own").is_symlink()
        assert (skills / "own" / "SKILL.md").read_text(encoding="utf-8") == "own"
        assert (ctx.home / ".claude" / "debug").is_dir()


def test_edge_restores_decoded_profiles_and_warns_when_running() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "edge")
        source = ctx.backup_dir / "edge-browser" / "Profile_1"
        source.mkdir(parents=True)
        (source / "Bookmarks").write_text("{}", encoding="utf-8")

        with patch("carryover.steps.restore.process_running", return_value=True):
            restore.edge(ctx)
        record = ctx.end_step()

        profile = ctx.home / "Library" / "Application Support" / "Microsoft Edge" / "Profile 1"
        assert (profile / "Bookmarks").is_file()
        assert record.warnings[0].code == "EDGE_RUNNING"
        assert record.warnings[0].category == "user_action"


def test_edge_prompt_can_skip_the_step(monkeypatch: pytest.MonkeyPatch) -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "edge", yes=False)
        (ctx.backup_dir / "edge-browser" / "Default").mkdir(parents=True)
        monkeypatch.setattr("carryover.steps.restore.io.choose", lambda *_args: "skip")

        with patch("carryover.steps.restore.process_running", return_value=True):
            restore.edge(ctx)
        record = ctx.end_step()

        assert record.warnings == []
        assert not (ctx.home / "Library").exists()


def test_cursor_without_cli_asks_user_to_install_extensions() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "cursor_ide")
        source = ctx.backup_dir / "cursor-ide"
        source.mkdir()
        (source / "settings.json").write_text("{}", encoding="utf-8")
        (source / "extensions.txt").write_text("ms-python.python\n\n", encoding="utf-8")

        with patch("carryover.steps.restore.resolve_cursor_cli", return_value=None):
            restore.cursor_ide(ctx)
        record = ctx.end_step()

        assert (ctx.home / "Library" / "Application Support" / "Cursor" / "User" / "settings.json").is_file()
        warning = record.warnings[0]
        assert warning.code == "CURSOR_CLI"
        assert "1 extension(s)" in warning.message


def test_db_tools_uses_recorded_datagrip_version() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "db_tools")
        source = ctx.backup_dir / "db-tools"
        (source / "datagrip" / "options").mkdir(parents=True)
        (source / "datagrip" / "options" / "ide.general.xml").write_text("<xml/>", encoding="utf-8")
        (source / "datagrip-version.txt").write_text("DataGrip2024.3\n", encoding="utf-8")
        (source / "psql").mkdir()
        (source / "psql" / "pgpass").write_text("host:5432:*:me:pw\n", encoding="utf-8")

        restore.db_tools(ctx)
        ctx.end_step()

        jetbrains = ctx.home / "Library" / "Application Support" / "JetBrains"
        assert (jetbrains / "DataGrip2024.3" / "options" / "ide.general.xml").is_file()
        assert stat.S_IMODE(os.stat(ctx.home / ".pgpass").st_mode) == 0o600


def test_github_repos_extracts_into_home() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        ctx = _context(root, "github_repos")
        staging = root / "staging"
        (staging / "GitHub" / "app").mkdir(parents=True)
        (staging / "GitHub" / "app" / "main.py").write_text("print()\n", encoding="utf-8")
        assert ctx.files.create_archive(
            ctx.backup_dir / "github-repos" / "github.tar.gz", staging, ["GitHub"]
        )

        restore.github_repos(ctx)
        record = ctx.end_step()

        assert record.status == "completed"
        assert (ctx.home / "GitHub" / "app" / "main.py").read_text(encoding="utf-8") == "print()\n"


def test_claude_skill_link_keeps_existing_local_directory() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "claude_code")
        backup = ctx.backup_dir
        (backup / "claude-code" / "skills" / "foo").mkdir(parents=True)
        (backup / "shared-agents" / "skills" / "foo").mkdir(parents=True)
        (backup / "shared-agents" / "skills" / "foo" / "SKILL.md").write_text("shared", encoding="utf-8")
        local = ctx.home / ".claude" / "skills" / "foo"
        local.mkdir(parents=True)
        (local / "SKILL.md").write_text("my local edits", encoding="utf-8")

        restore.claude_code(ctx)
        ctx.end_step()

        assert local.is_symlink()
        kept = ctx.home / ".claude" / "skills" / "foo.pre-restore" / "SKILL.md"
        assert kept.read_text(encoding="utf-8") == "my local edits"


def test_malformed_project_paths_do_not_stop_later_steps() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        pipeline = Pipeline(
            "restore",
            [
                StepDefinition(1, "before", "Before", lambda _ctx: None),
                StepDefinition(2, "project_configs", "Project configs", restore.project_configs),
                StepDefinition(3, "after", "After", lambda _ctx: None),
            ],
        )
        ctx = make_context(Path(tmp), pipeline)
        source = ctx.backup_dir / "claude-code-project-configs"
        source.mkdir(parents=True)
        (source / "project-paths.json").write_text(json.dumps(["~/x"]), encoding="utf-8")

        ctx.run_all()

        steps = read_ledger(ctx.ledger.path)["steps"]
        assert [step["status"] for step in steps] == ["completed", "completed", "completed"]
        assert steps[1]["warnings"][0]["code"] == "PROJECT_PATHS"


def test_project_paths_with_non_string_values_are_ignored() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "project_configs")
        source = ctx.backup_dir / "claude-code-project-configs"
        (source / "GitHub--app").mkdir(parents=True)
        (source / "GitHub--app" / "settings.local.json").write_text("{}", encoding="utf-8")
        (source / "project-paths.json").write_text(
            json.dumps({"GitHub--app": "~/GitHub/app/.claude", "GitHub--odd": 42}),
            encoding="utf-8",
        )
        (ctx.home / "GitHub" / "app").mkdir(parents=True)

        restore.project_configs(ctx)
        record = ctx.end_step()

        assert record.status == "completed"
        assert [warning.code for warning in record.warnings] == ["PROJECT_PATHS"]
        assert (ctx.home / "GitHub" / "app" / ".claude" / "settings.local.json").is_file()


def test_cursor_extensions_listing_that_is_not_utf8_is_a_warning() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "cursor_ide")
        source = ctx.backup_dir / "cursor-ide"
        source.mkdir()
        (source / "extensions.txt").write_bytes(b"ms-python\xff\n")

        with patch("carryover.steps.restore.resolve_cursor_cli", return_value=None):
            restore.cursor_ide(ctx)
        record = ctx.end_step()

        assert record.status == "completed"
        assert [warning.code for warning in record.warnings] == ["CURSOR_EXTENSIONS"]


def test_unreadable_datagrip_version_falls_back_to_default() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "db_tools")
        source = ctx.backup_dir / "db-tools"
        (source / "datagrip" / "options").mkdir(parents=True)
        (source / "datagrip" / "options" / "ide.general.xml").write_text("<xml/>", encoding="utf-8")
        (source / "datagrip-version.txt").write_bytes(b"\xff\xfe\n")

        restore.db_tools(ctx)
        record = ctx.end_step()

        jetbrains = ctx.home / "Library" / "Application Support" / "JetBrains"
        assert record.status == "completed"
        assert (jetbrains / "DataGrip2025.2" / "options" / "ide.general.xml").is_file()


def test_open_tabs_that_are_not_a_window_list_are_a_warning() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        ctx = _context(Path(tmp), "edge")
        (ctx.backup_dir / "open-tabs.json").write_text(json.dumps({"tabs": []}), encoding="utf-8")

        restore.edge(ctx)
        record = ctx.end_step()

        assert record.status == "completed"
        assert [warning.code for warning in record.warnings] == ["EDGE_TABS"]
