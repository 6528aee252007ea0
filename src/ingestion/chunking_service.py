"""Chunking service for grouping transcript segments into passages."""

import math

from src.utils.errors import (
    ChunkCoverageMismatch,
    ChunkingProducedNoResults,
    EmptyTranscript,
)
from src.utils.logging import get_logger

from .config import KnowledgeBaseConfig
from .schemas import Passage, TranscriptSegment

logger = get_logger(__name__)


def collection_name_for(video_id: str) -> str:
    """Return the deterministic collection name for a video."""
    return f"video-{video_id}"


def build_passage_path(video_id: str, start_segment_index: int, start_time: float) -> str:
    """Build the passage path key, e.g. `abc/chunk_220_751.5s.txt`.

    The path is the document key in the index and encodes the video id and
    start time so retrieval can recover them without a metadata lookup.
    """
    return f"{video_id}/chunk_{start_segment_index}_{start_time:.1f}s.txt"


class ChunkingService:
    """Service for grouping transcript segments into timestamped passages.

    Consecutive segments are grouped into paragraphs of at most
    `chunk_group_size` segments. This keeps whole caption lines together
    instead of cutting on a fixed character count, at the cost of passages
    of variable length.
    """

    def __init__(self, config: KnowledgeBaseConfig):
        """Initialize chunking service with configuration.

        Args:
            config: Configuration object with the segment group size.
        """
        self.config = config
        self.group_size = config.chunk_group_size
        logger.info("chunking_service_initialized", group_size=self.group_size)

    def chunk_segments(
        self, video_id: str, segments: list[TranscriptSegment]
    ) -> list[Passage]:
        """Group segments into passages and verify full coverage.

        Args:
            video_id: Internal video id used in the passage path keys.
            segments: Ordered transcript segments.

        Returns:
            `ceil(len(segments) / group_size)` passages in transcript order.

        Raises:
            EmptyTranscript: If there are no segments.
            ChunkingProducedNoResults: If grouping yields no passages.
            ChunkCoverageMismatch: If the joined passage text does not
                reconstruct the joined segment text.
        """
        if not segments:
            raise EmptyTranscript("Cannot chunk empty transcript")

        logger.info(
            "chunking_started",
            video_id=video_id,
            segments=len(segments),
            group_size=self.group_size,
        )

        passages: list[Passage] = []
        for start in range(0, len(segments), self.group_size):
            group = segments[start : start + self.group_size]
            passages.append(
                self._create_passage(
                    video_id=video_id,
                    segments=group,
                    start_segment_index=start,
                    chunk_index=len(passages),
                )
            )

        if not passages:
            raise ChunkingProducedNoResults("Chunking produced no results")

        self._verify_coverage(video_id, segments, passages)

        logger.info(
            "chunking_completed",
            video_id=video_id,
            passages_created=len(passages),
            expected=math.ceil(len(segments) / self.group_size),
        )
        return passages

    def _create_passage(
        self,
        video_id: str,
        segments: list[TranscriptSegment],
        start_segment_index: int,
        chunk_index: int,
    ) -> Passage:
        """Create a passage from one group of consecutive segments."""
        start_time = segments[0].offset_ms / 1000
        last = segments[-1]
        end_time = (last.offset_ms + last.duration_ms) / 1000

        return Passage(
            video_id=video_id,
            chunk_index=chunk_index,
            start_segment_index=start_segment_index,
            text=" ".join(s.text for s in segments),
            start_time=start_time,
            end_time=end_time,
            path=build_passage_path(video_id, start_segment_index, start_time),
        )

    def _verify_coverage(
        self,
        video_id: str,
        segments: list[TranscriptSegment],
        passages: list[Passage],
    ) -> None:
        """Check that the passages reconstruct the full transcript text."""
        total_text = " ".join(s.text for s in segments)
        chunked_text = " ".join(p.text for p in passages)
        coverage = (len(chunked_text) / len(total_text) * 100) if total_text else 100.0

        logger.info(
            "chunking_coverage",
            video_id=video_id,
            total_characters=len(total_text),
            chunked_characters=len(chunked_text),
            coverage_percent=round(coverage, 1),
        )

        if chunked_text != total_text:
            raise ChunkCoverageMismatch(
                f"Chunked text covers {coverage:.1f}% of the transcript for video {video_id}"
            )
