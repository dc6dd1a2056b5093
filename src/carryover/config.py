"""Configuration helpers for Carryover.

This module reads the optional user config file, validates it with Pydantic,
and resolves the effective home and backups directories.

Example:
    >>> from carryover.config import utc_now
    >>> utc_now().endswith("Z")
    True
"""

import datetime as dt
import json
import os
from pathlib import Path
from tempfile import NamedTemporaryFile

from pydantic import ValidationError

from . import paths
from .io import die
from .models import CarryoverConfig

CONFIG_ENV_VAR = "CARRYOVER_CONFIG"


def utc_now() -> str:
    """Return the current UTC timestamp in ISO-8601 format.

    Returns:
        UTC timestamp like ``2026-01-18T12:34:56Z``.

    Example:
        >>> timestamp = utc_now()
        >>> timestamp.endswith("Z")
        True
    """
    now = dt.datetime.now(tz=dt.timezone.utc).replace(microsecond=0)
    return now.isoformat().replace("+00:00", "Z")


def load_json(path: Path) -> dict | list | None:
    """Load a JSON file if it exists.

    Args:
        path: Path to the JSON file.

    Returns:
        Parsed payload, or ``None`` if the file does not exist.

    Example:
        >>> from pathlib import Path
        >>> load_json(Path("missing.json")) is None
        True
    """
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def write_text_atomic(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Atomically replace a text file with new content."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    try:
        with NamedTemporaryFile(
            "w",
            encoding=encoding,
            delete=False,
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
        ) as handle:
            handle.write(content)
            temp_path = Path(handle.name)
        os.replace(temp_path, path)
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)


def resolve_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return paths.config_path()


def parse_config(payload: object, source: Path | str | None = None) -> CarryoverConfig:
    """Validate a config payload, exiting with a readable message when invalid."""
    try:
        return CarryoverConfig.model_validate(payload)
    except ValidationError as exc:
        location = f" at {source}" if source else ""
        die(f"invalid carryover config{location}:\n{exc}")
        raise  # unreachable; die exits


def load_config(path: Path | None = None) -> CarryoverConfig:
    """Load the user config, falling back to defaults when absent."""
    config_file = path or resolve_config_path()
    try:
        payload = load_json(config_file)
    except json.JSONDecodeError as exc:
        die(f"invalid carryover config at {config_file}: {exc}")
        raise
    if payload is None:
        return CarryoverConfig()
    return parse_config(payload, config_file)


def resolve_home(config: CarryoverConfig) -> Path:
    if config.home:
        return Path(config.home).expanduser()
    return Path.home()


def resolve_backups_dir(config: CarryoverConfig) -> Path:
    if config.backups_dir:
        return Path(config.backups_dir).expanduser()
    return paths.default_backups_dir()
