"""Error types raised by the aggregation engine."""

from __future__ import annotations

from typing import Tuple


class DLAError(Exception):
    """Base class for every error raised by ``dla_engine``."""


class InvalidConfiguration(DLAError, ValueError):
    """A run configuration was rejected before any run started."""


class InvalidState(DLAError, RuntimeError):
    """An operation was requested in a state that forbids it."""


class DuplicateAttachment(DLAError, RuntimeError):
    """A coordinate already in the aggregate was about to be inserted again."""

    def __init__(self, coordinate: Tuple[int, ...]) -> None:
        super().__init__(f"coordinate {coordinate} is already part of the aggregate")
        self.coordinate = coordinate


__all__ = ["DLAError", "InvalidConfiguration", "InvalidState", "DuplicateAttachment"]
