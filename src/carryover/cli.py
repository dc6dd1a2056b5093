"""Carryover command-line interface."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Annotated, Callable, Optional

import typer

from . import __version__
from . import log as carryover_log
from .commands import capture_backup as capture_cmd
from .commands import restore_backup as restore_cmd
from .errors import BackupFormatError, UsageError
from .ledger import EXIT_PREFLIGHT_FAILED, EXIT_USAGE

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Move a developer workstation to a new machine: capture, then restore.",
)


def _log_level_callback(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in carryover_log.LEVEL_NAMES:
        raise typer.BadParameter(
            f"expected one of: {', '.join(carryover_log.LEVEL_NAMES)}"
        )
    return normalized


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help="minimum log level (trace, debug, info, success, warning, error)",
            callback=_log_level_callback,
        ),
    ] = None,
    no_color: Annotated[
        bool, typer.Option("--no-color", help="disable colored output")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="print the version and exit",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    if log_level is not None:
        carryover_log.set_level(log_level)
    if no_color:
        carryover_log.set_no_color(True)


def _run(command: Callable[[SimpleNamespace], int | None], args: SimpleNamespace) -> None:
    try:
        exit_code = command(args)
    except UsageError as exc:
        carryover_log.error(f"error: {exc}")
        if exc.recovery_hint:
            carryover_log.info(exc.recovery_hint)
        raise typer.Exit(code=EXIT_USAGE) from exc
    except BackupFormatError as exc:
        carryover_log.error(f"error: {exc}")
        for name in exc.missing:
            carryover_log.error(f"  missing: {name}")
        if exc.recovery_hint:
            carryover_log.info(exc.recovery_hint)
        raise typer.Exit(code=EXIT_PREFLIGHT_FAILED) from exc
    if exit_code:
        raise typer.Exit(code=exit_code)


ResumeFromOption = Annotated[
    Optional[str],
    typer.Option("--resume-from", help="skip steps before this step name"),
]
OnlyOption = Annotated[
    Optional[str],
    typer.Option("--only", help="run only this step name"),
]
DryRunOption = Annotated[
    bool,
    typer.Option("--dry-run", help="show what would happen without writing"),
]
YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="skip confirmation prompts"),
]


@app.command("capture")
def capture(
    destination: Annotated[
        Optional[str],
        typer.Argument(help="backup folder (default: a new timestamped folder)"),
    ] = None,
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    resume_from: ResumeFromOption = None,
    only: OnlyOption = None,
    encrypt: Annotated[
        bool,
        typer.Option("--encrypt", help="zip the finished backup with a password"),
    ] = False,
) -> None:
    """Capture this machine into a backup folder."""
    _run(
        capture_cmd,
        SimpleNamespace(
            destination=destination,
            dry_run=dry_run,
            yes=yes,
            resume_from=resume_from,
            only=only,
            encrypt=encrypt,
        ),
    )


@app.command("restore")
def restore(
    backup: Annotated[
        str, typer.Argument(help="backup folder or encrypted .zip archive")
    ],
    dry_run: DryRunOption = False,
    yes: YesOption = False,
    resume_from: ResumeFromOption = None,
    only: OnlyOption = None,
) -> None:
    """Restore a backup onto this machine."""
    _run(
        restore_cmd,
        SimpleNamespace(
            backup=backup,
            dry_run=dry_run,
            yes=yes,
            resume_from=resume_from,
            only=only,
        ),
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
