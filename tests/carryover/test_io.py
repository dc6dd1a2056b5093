import builtins

import pytest

import carryover.io as io


def _answer(monkeypatch: pytest.MonkeyPatch, reply: str) -> None:
    monkeypatch.setattr(builtins, "input", lambda _prompt="": reply)


@pytest.mark.parametrize(
    ("reply", "expected"),
    [("skip", "skip"), ("SKIP ", "skip"), ("", "continue"), ("later", "continue")],
)
def test_choose_without_terminal(monkeypatch: pytest.MonkeyPatch, reply: str, expected: str) -> None:
    _answer(monkeypatch, reply)
    assert io.choose("Edge is open", ("continue", "skip"), "continue") == expected


def test_confirm_without_terminal(monkeypatch: pytest.MonkeyPatch) -> None:
    _answer(monkeypatch, "y")
    assert io.confirm("Overwrite?")
    _answer(monkeypatch, "")
    assert io.confirm("Overwrite?", default=True)
    _answer(monkeypatch, "nope")
    assert not io.confirm("Overwrite?", default=True)


def test_die_reports_and_exits(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        io.die("broken config", code=2)
    assert excinfo.value.code == 2
    assert "error: broken config" in capsys.readouterr().err
