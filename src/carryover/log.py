"""Terminal output for Carryover runs.

Everything a run prints goes through here: step progress lines, ``[dry-run]``
announcements, issue echoes and plain status messages. Lines below the
active level are dropped. WARNING and above go to stderr.

The level comes from ``--log-level`` or ``CARRYOVER_LOG_LEVEL``; colour is
disabled by ``--no-color``, ``NO_COLOR`` or ``CARRYOVER_NO_COLOR``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from enum import IntEnum

from rich.console import Console
from rich.text import Text


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


LEVEL_NAMES = ("trace", "debug", "info", "success", "warning", "error")
_ALIASES = {"warn": LogLevel.WARNING}
_STYLES = {
    LogLevel.TRACE: "dim",
    LogLevel.DEBUG: "cyan",
    LogLevel.INFO: "",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}


@dataclass
class _OutputState:
    level: LogLevel | None = None
    no_color: bool | None = None


_state = _OutputState()


def _parse_level(value: str | None) -> LogLevel:
    name = (value or "").strip().lower()
    if name in LEVEL_NAMES:
        return LogLevel[name.upper()]
    return _ALIASES.get(name, LogLevel.INFO)


def _active_level() -> LogLevel:
    if _state.level is None:
        _state.level = _parse_level(os.environ.get("CARRYOVER_LOG_LEVEL"))
    return _state.level


def set_level(value: str | None) -> None:
    """Set the active level; ``None`` re-reads ``CARRYOVER_LOG_LEVEL`` on next use."""
    _state.level = None if value is None else _parse_level(value)


def set_no_color(value: bool) -> None:
    """Force colour output off (``True``) or defer to the environment."""
    _state.no_color = True if value else None


def enabled(level: LogLevel) -> bool:
    return level >= _active_level()


def _console(*, stderr: bool) -> Console:
    no_color = _state.no_color
    if no_color is None:
        no_color = bool(os.environ.get("NO_COLOR") or os.environ.get("CARRYOVER_NO_COLOR"))
    return Console(
        file=sys.stderr if stderr else sys.stdout,
        soft_wrap=True,
        highlight=False,
        no_color=no_color,
    )


def _print(level: LogLevel, text: Text | str, *, blank_before: bool = False) -> None:
    if not enabled(level):
        return
    if isinstance(text, str):
        text = Text(text, style=_STYLES[level])
    console = _console(stderr=level >= LogLevel.WARNING)
    if blank_before:
        console.print()
    console.print(text)


def trace(message: str) -> None:
    _print(LogLevel.TRACE, message)


def debug(message: str) -> None:
    _print(LogLevel.DEBUG, message)


def info(message: str) -> None:
    _print(LogLevel.INFO, message)


def success(message: str) -> None:
    _print(LogLevel.SUCCESS, message)


def warning(message: str) -> None:
    _print(LogLevel.WARNING, message)


def error(message: str) -> None:
    _print(LogLevel.ERROR, message)


def heading(message: str) -> None:
    """Print a bold section heading."""
    _print(LogLevel.INFO, Text(message, style="bold"))


def progress(step_id: int, total: int, label: str, *, note: str | None = None) -> None:
    """Print the ``==> [id/total] label`` line that opens (or skips) a step."""
    text = Text()
    text.append(f"==> [{step_id}/{total}] ", style="green")
    text.append(label, style="bold")
    if note:
        text.append(f" ({note})", style="dim")
    _print(LogLevel.INFO, text, blank_before=True)


def dry_run(description: str) -> None:
    """Announce a mutation that dry-run mode is not performing."""
    text = Text("  ")
    text.append("[dry-run]", style="magenta")
    text.append(f" {description}")
    _print(LogLevel.INFO, text)


def issue(kind: str, message: str, *, hint: str | None = None) -> None:
    """Echo a recorded step issue (``WARN`` or ``ERROR``) and its recovery hint."""
    level = LogLevel.ERROR if kind == "ERROR" else LogLevel.WARNING
    _print(level, f"  {kind}: {message}")
    if hint and level is LogLevel.ERROR:
        info(f"  hint: {hint}")
