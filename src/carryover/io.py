"""Interactive questions asked during a run.

Questions use questionary when both stdin and stdout are terminals and fall
back to plain ``input()`` otherwise, so piped runs and tests still work.
"""

from __future__ import annotations

import sys
from typing import NoReturn, Sequence

import questionary

from . import log


def _use_questionary() -> bool:
    return sys.stdin.isatty() and sys.stdout.isatty()


def die(message: str, code: int = 1) -> NoReturn:
    """Report a fatal problem and exit with ``code``."""
    log.error(f"error: {message}")
    sys.exit(code)


def choose(text: str, choices: Sequence[str], default: str) -> str:
    """Ask the user to pick one of ``choices``.

    A blank answer picks ``default``; so does an answer that matches none of
    the choices in the plain-input fallback.

    Returns:
        The chosen entry, exactly as it appears in ``choices``.
    """
    if _use_questionary():
        value = questionary.select(text, choices=list(choices), default=default).ask()
        if value is None:
            die("aborted", code=130)
        return str(value)
    answer = input(f"{text} [{'/'.join(choices)}] ({default}): ").strip().lower()
    for choice in choices:
        if answer == choice.lower():
            return choice
    return default


def confirm(text: str, default: bool = False) -> bool:
    """Ask a yes/no question; an empty answer returns ``default``."""
    if _use_questionary():
        return bool(questionary.confirm(text, default=default).ask())
    suffix = "[Y/n]" if default else "[y/N]"
    response = input(f"{text} {suffix}: ").strip().lower()
    if response == "":
        return default
    return response in {"y", "yes"}
