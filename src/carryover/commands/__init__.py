"""Command implementations exposed by the Carryover CLI."""

from .capture import capture_backup
from .restore import restore_backup

__all__ = [
    "capture_backup",
    "restore_backup",
]
