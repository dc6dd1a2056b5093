import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import carryover.validator as validator
from carryover.ledger import ResultLedger
from tests.carryover.helpers import make_backup


def _ledger(tmp: Path) -> ResultLedger:
    return ResultLedger.create(tmp / "results.json", script="restore", total_steps=1, version="t")


def test_capture_rules_flag_small_or_broken_backups() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        backup = make_backup(Path(tmp) / "backup")
        (backup / "manifest.json").write_text("{not json", encoding="utf-8")
        ledger = _ledger(Path(tmp))

        passed = validator.run_validation(ledger, validator.capture_rules(backup))

        statuses = {check.name: check.status for check in ledger.record.validation.checks}
        assert passed is False
        assert statuses["manifest_json"] == "fail"
        assert statuses["dir_claude-code"] == "pass"
        assert statuses["dir_shell-env"] == "pass"
        assert statuses["dir_conductor"] == "pass"
        assert statuses["file_count"] == "fail"


def test_check_file_count_requires_more_than_minimum() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        for index in range(11):
            (root / f"f{index}").write_text("x", encoding="utf-8")
        assert validator.check_file_count(root).status == "pass"
        (root / "f0").unlink()
        assert validator.check_file_count(root).status == "fail"


def test_ssh_key_permissions_only_warn() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        key = Path(tmp) / "id_ed25519"
        assert validator.check_private_key_mode(key, "~/.ssh/id_ed25519").status == "warn"
        key.write_text("secret", encoding="utf-8")
        os.chmod(key, 0o644)
        check = validator.check_private_key_mode(key, "~/.ssh/id_ed25519")
        assert check.status == "warn"
        assert "644" in check.message
        os.chmod(key, 0o600)
        assert validator.check_private_key_mode(key, "~/.ssh/id_ed25519").status == "pass"


def test_restore_rules_are_independent_of_step_status() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        backup = make_backup(root / "backup")
        home = root / "home"
        (home / ".ssh").mkdir(parents=True)
        (home / ".zshrc").write_text("export X=1\n", encoding="utf-8")
        key = home / ".ssh" / "id_ed25519"
        key.write_text("secret", encoding="utf-8")
        os.chmod(key, 0o600)
        ledger = _ledger(root)

        with patch("carryover.validator.exec_util.command_available", return_value=False):
            passed = validator.run_validation(ledger, validator.restore_rules(backup, home))

        statuses = {check.name: check.status for check in ledger.record.validation.checks}
        assert statuses["claude_settings"] == "fail"
        assert statuses["zshrc"] == "pass"
        assert statuses["ssh_key_perms"] == "pass"
        assert statuses["volta_in_path"] == "warn"
        assert statuses["node_in_path"] == "warn"
        assert statuses["npm_in_path"] == "warn"
        assert statuses["conductor_worktrees"] == "warn"
        assert passed is False


def test_claude_settings_rule_only_when_backup_had_it() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        backup = make_backup(root / "backup")
        (backup / "claude-code").rmdir()
        names = [rule().name for rule in validator.restore_rules(backup, root / "home")]
        assert "claude_settings" not in names
        assert names[0] == "zshrc"


def test_check_worktrees_counts_git_checkouts() -> None:
    with tempfile.TemporaryDirectory() as tmp:
        workspaces = Path(tmp) / "workspaces"
        (workspaces / "app" / "feature" / ".git").mkdir(parents=True)
        check = validator.check_worktrees(workspaces)
        assert check.status == "pass"
        assert "1 worktree" in check.message
