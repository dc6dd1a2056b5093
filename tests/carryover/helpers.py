# ruff: noqa: E402

from __future__ import annotations

import json
import shutil
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import carryover.paths as paths
from carryover.ledger import ResultLedger
from carryover.models import CarryoverConfig
from carryover.runner import Pipeline, RunContext, RunOptions, StepDefinition

GIT_AVAILABLE = shutil.which("git") is not None


def noop(_ctx: RunContext) -> None:
    return None


def make_pipeline(*names: str, script: str = "restore") -> Pipeline:
    return Pipeline(
        script,
        [StepDefinition(index, name, f"Step {name}", noop) for index, name in enumerate(names, 1)],
    )


def make_context(
    tmp: Path,
    pipeline: Pipeline | None = None,
    *,
    dry_run: bool = False,
    yes: bool = True,
    resume_from: str | None = None,
    only: str | None = None,
) -> RunContext:
    pipeline = pipeline or make_pipeline("first")
    options = RunOptions(dry_run=dry_run, yes=yes, resume_from=resume_from, only=only)
    ledger = ResultLedger.create(
        tmp / "results.json",
        script=pipeline.script,
        total_steps=pipeline.total,
        version="test",
        dry_run=dry_run,
        resume_from=resume_from,
        only=only,
    )
    home = tmp / "home"
    backup = tmp / "backup"
    home.mkdir(parents=True, exist_ok=True)
    backup.mkdir(parents=True, exist_ok=True)
    return RunContext(
        pipeline=pipeline,
        ledger=ledger,
        options=options,
        home=home,
        backup_dir=backup,
        config=CarryoverConfig(network_probe_url=""),
    )


def open_step(ctx: RunContext, name: str = "first") -> None:
    step = ctx.pipeline.find(name)
    assert step is not None
    assert ctx.begin_step(step.id, step.name, step.label)


def read_ledger(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


def make_backup(root: Path) -> Path:
    """Create the smallest folder that passes the structural backup check."""
    root.mkdir(parents=True, exist_ok=True)
    for name in paths.REQUIRED_BACKUP_ENTRIES:
        if name.endswith((".md", ".json")):
            (root / name).write_text("{}\n" if name.endswith(".json") else "# guide\n", encoding="utf-8")
        else:
            (root / name).mkdir(exist_ok=True)
    return root


def snapshot(root: Path) -> dict[str, bytes | None]:
    """Map every path below ``root`` to its bytes (``None`` for directories)."""
    result: dict[str, bytes | None] = {}
    for entry in sorted(root.rglob("*")):
        key = entry.relative_to(root).as_posix()
        if entry.is_symlink():
            result[key] = str(entry.readlink()).encode()
        elif entry.is_dir():
            result[key] = None
        else:
            result[key] = entry.read_bytes()
    return result


def git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(
        ["git", "-C", str(cwd), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout.strip()


def init_repo(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    git(path, "init", "-q", "-b", "main")
    git(path, "config", "user.email", "dev@example.com")
    git(path, "config", "user.name", "Dev")
    git(path, "config", "commit.gpgsign", "false")
    (path / "README.md").write_text("hello\n", encoding="utf-8")
    git(path, "add", "README.md")
    git(path, "commit", "-q", "-m", "initial")
    return path


def cli_args(**overrides: object) -> SimpleNamespace:
    data = {
        "dry_run": False,
        "yes": True,
        "resume_from": None,
        "only": None,
    }
    data.update(overrides)
    return SimpleNamespace(**data)
