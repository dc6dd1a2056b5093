# ruff: noqa: E402

import builtins
import sys
from pathlib import Path

import pytest
from _pytest.doctest import DoctestModule

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

import carryover.io as io
import carryover.log as carryover_log

DOCTEST_MODULES = {
    ROOT / "src" / "carryover" / "__init__.py",
    ROOT / "src" / "carryover" / "git.py",
    ROOT / "src" / "carryover" / "models.py",
    ROOT / "src" / "carryover" / "paths.py",
    ROOT / "src" / "carryover" / "templates.py",
    ROOT / "src" / "carryover" / "worktrees.py",
    ROOT / "src" / "carryover" / "steps" / "capture.py",
    ROOT / "src" / "carryover" / "steps" / "locations.py",
}


@pytest.fixture(autouse=True)
def _no_prompts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(io, "_use_questionary", lambda: False)
    monkeypatch.delenv("CARRYOVER_LOG_LEVEL", raising=False)
    monkeypatch.setenv("CARRYOVER_NO_COLOR", "1")
    carryover_log.set_level(None)

    def fail_input(prompt: str = "") -> str:
        raise AssertionError("prompted unexpectedly")

    monkeypatch.setattr(builtins, "input", fail_input)


def pytest_collect_file(
    parent: pytest.Collector, file_path: Path
) -> DoctestModule | None:
    path = file_path if isinstance(file_path, Path) else Path(str(file_path))
    if path in DOCTEST_MODULES:
        return DoctestModule.from_parent(parent, path=path)
    return None
