"""Subprocess helpers for running external collaborators (git, tar, brew...)."""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Protocol


@dataclass(frozen=True)
class CommandRequest:
    """Typed command invocation request."""

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    capture_output: bool = True
    text: bool = True
    timeout_seconds: float | None = None
    stdin: int | None = None


@dataclass(frozen=True)
class CommandResult:
    """Typed command execution result."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def detail(self) -> str:
        """Return the most useful diagnostic line from the command output."""
        output = (self.stderr or self.stdout or "").strip()
        if not output:
            return f"exit status {self.returncode}"
        return output.splitlines()[-1]


class CommandRunner(Protocol):
    """Runtime command-execution interface."""

    def run(self, request: CommandRequest) -> CommandResult | None: ...


class SubprocessCommandRunner:
    """Default command-runner adapter backed by subprocess."""

    def run(self, request: CommandRequest) -> CommandResult | None:
        run_kwargs: dict[str, object] = {
            "cwd": request.cwd,
            "env": request.env,
            "check": False,
        }
        if request.capture_output:
            run_kwargs["capture_output"] = True
            run_kwargs["text"] = request.text
        if request.timeout_seconds is not None:
            run_kwargs["timeout"] = request.timeout_seconds
        if request.stdin is not None:
            run_kwargs["stdin"] = request.stdin
        try:
            completed = subprocess.run(list(request.argv), **run_kwargs)
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired as exc:
            stdout = (exc.stdout or "") if isinstance(exc.stdout, str) else ""
            stderr = (exc.stderr or "") if isinstance(exc.stderr, str) else ""
            return CommandResult(
                argv=request.argv,
                returncode=124,
                stdout=stdout,
                stderr=stderr,
                timed_out=True,
            )

        stdout = completed.stdout if isinstance(completed.stdout, str) else ""
        stderr = completed.stderr if isinstance(completed.stderr, str) else ""
        return CommandResult(
            argv=request.argv,
            returncode=completed.returncode,
            stdout=stdout,
            stderr=stderr,
        )


_DEFAULT_COMMAND_RUNNER: CommandRunner = SubprocessCommandRunner()


def run_with_runner(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult | None:
    """Execute a typed command request with the given runner."""
    active_runner = runner or _DEFAULT_COMMAND_RUNNER
    return active_runner.run(request)


def try_run_command(
    cmd: list[str],
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    *,
    timeout_seconds: float | None = None,
) -> CommandResult | None:
    """Run a command, capturing output, and return ``None`` if it is missing.

    Args:
        cmd: Command and arguments to execute.
        cwd: Optional working directory.
        env: Optional environment mapping.
        timeout_seconds: Optional timeout.

    Returns:
        ``CommandResult`` on execution, otherwise ``None``.
    """
    return run_with_runner(
        CommandRequest(
            argv=tuple(cmd),
            cwd=cwd,
            env=env,
            timeout_seconds=timeout_seconds,
        )
    )


def run_interactive(cmd: list[str], cwd: Path | None = None) -> CommandResult | None:
    """Run a command attached to the terminal (password prompts, long installs)."""
    return run_with_runner(
        CommandRequest(
            argv=tuple(cmd),
            cwd=cwd,
            capture_output=False,
            text=False,
        )
    )


def command_available(name: str) -> bool:
    """Return whether an executable is on ``PATH`` (or is an executable path)."""
    candidate = Path(name)
    if candidate.is_absolute():
        return candidate.is_file() and shutil.which(str(candidate)) is not None
    return shutil.which(name) is not None


def describe(cmd: list[str] | tuple[str, ...]) -> str:
    """Render argv as a single human-readable line."""
    return " ".join(str(part) for part in cmd)
