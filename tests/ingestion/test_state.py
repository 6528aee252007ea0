"""Unit tests for the ingestion status state machine."""

import itertools

import pytest

from src.ingestion.schemas import VideoStatus
from src.ingestion.state import StepResult, can_transition, transition
from src.utils.errors import EmptyTranscript, InvalidStatusTransition

ALLOWED = {
    (VideoStatus.QUEUED, VideoStatus.PROCESSING),
    (VideoStatus.PROCESSING, VideoStatus.READY),
    (VideoStatus.PROCESSING, VideoStatus.FAILED),
    (VideoStatus.FAILED, VideoStatus.QUEUED),
}


@pytest.mark.unit
class TestTransitions:
    """Test the allowed status transitions."""

    @pytest.mark.parametrize(
        ("current", "target"), list(itertools.product(VideoStatus, repeat=2))
    )
    def test_only_allowed_transitions_are_reachable(
        self, current: VideoStatus, target: VideoStatus
    ) -> None:
        """Test every status pair against the allowed set."""
        assert can_transition(current, target) == ((current, target) in ALLOWED)

    def test_transition_returns_target(self) -> None:
        """Test that a valid transition returns the new status."""
        assert transition(VideoStatus.QUEUED, VideoStatus.PROCESSING) == VideoStatus.PROCESSING

    @pytest.mark.parametrize("target", list(VideoStatus))
    def test_ready_is_terminal(self, target: VideoStatus) -> None:
        """Test that READY has no outgoing transition."""
        with pytest.raises(InvalidStatusTransition) as exc_info:
            transition(VideoStatus.READY, target)

        assert exc_info.value.current == "READY"
        assert exc_info.value.target == target.value

    def test_invalid_transition_message(self) -> None:
        """Test the error message names both statuses."""
        with pytest.raises(InvalidStatusTransition, match="QUEUED -> READY"):
            transition(VideoStatus.QUEUED, VideoStatus.READY)


@pytest.mark.unit
class TestStepResult:
    """Test StepResult success and failure handling."""

    def test_success_unwraps_value(self) -> None:
        """Test that a successful result returns its value."""
        result = StepResult.success("chunk-transcript", [1, 2, 3])

        assert result.ok
        assert result.unwrap() == [1, 2, 3]

    def test_failure_reraises_error(self) -> None:
        """Test that unwrapping a failed result raises the captured error."""
        error = EmptyTranscript("Cannot chunk empty transcript")
        result = StepResult.failure("chunk-transcript", error)

        assert not result.ok
        assert result.step == "chunk-transcript"
        with pytest.raises(EmptyTranscript) as exc_info:
            result.unwrap()
        assert exc_info.value is error
