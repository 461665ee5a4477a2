"""User-facing progress helpers."""

from .progress import StageProgressReporter, StageProgressState

__all__ = ["StageProgressReporter", "StageProgressState"]
