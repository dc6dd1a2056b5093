"""Step bodies and pipeline definitions for capture and restore."""

from .capture import CAPTURE_PIPELINE
from .restore import RESTORE_PIPELINE

__all__ = ["CAPTURE_PIPELINE", "RESTORE_PIPELINE"]
