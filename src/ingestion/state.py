"""Ingestion status state machine and per-step results.

QUEUED -> PROCESSING -> READY | FAILED, plus the FAILED -> QUEUED retry edge.
READY is terminal.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from src.utils.errors import InvalidStatusTransition

from .schemas import VideoStatus

T = TypeVar("T")

ALLOWED_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.QUEUED: frozenset({VideoStatus.PROCESSING}),
    VideoStatus.PROCESSING: frozenset({VideoStatus.READY, VideoStatus.FAILED}),
    VideoStatus.READY: frozenset(),
    VideoStatus.FAILED: frozenset({VideoStatus.QUEUED}),
}


def can_transition(current: VideoStatus, target: VideoStatus) -> bool:
    """Return True if `current -> target` is an allowed transition."""
    return target in ALLOWED_TRANSITIONS[current]


def transition(current: VideoStatus, target: VideoStatus) -> VideoStatus:
    """Validate a status change and return the new status.

    Raises:
        InvalidStatusTransition: If the transition is not allowed.
    """
    if not can_transition(current, target):
        raise InvalidStatusTransition(current.value, target.value)
    return target


@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Outcome of one ingestion step: either a value or the error that stopped it."""

    step: str
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, step: str, value: T) -> "StepResult[T]":
        return cls(step=step, value=value)

    @classmethod
    def failure(cls, step: str, error: Exception) -> "StepResult[T]":
        return cls(step=step, error=error)

    def unwrap(self) -> T:
        """Return the value, raising the captured error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]
