from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    unknown_shape = "unknown_shape"
    invalid_placement = "invalid_placement"
    not_your_turn = "not_your_turn"
    invalid_state = "invalid_state"
    stage_not_found = "stage_not_found"
    invalid_intent = "invalid_intent"


class TowerError(ValueError):
    """A recoverable gameplay error, surfaced to the player as a rejection."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class InvariantViolation(RuntimeError):
    """Internal consistency failure; the affected stage must be reset."""
