"""Pydantic schemas for transcript ingestion."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel


class VideoStatus(str, Enum):
    """Ingestion status of a video row."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class Video(BaseModel):
    """A video in a profile's knowledge base.

    Mirrors the `videos` row. Only the ingestion coordinator (and the retry
    edge) changes status, failure_reason, title and thumbnail_url.
    """

    id: str
    source_id: str
    profile_id: str | None = None
    title: str = ""
    thumbnail_url: str = ""
    status: VideoStatus = VideoStatus.QUEUED
    failure_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class TranscriptSegment(BaseModel):
    """Single timed transcript segment as returned by the acquisition adapter."""

    text: str
    offset_ms: int  # Start time in milliseconds
    duration_ms: int  # Duration in milliseconds


class VideoTranscript(BaseModel):
    """Ordered transcript segments plus the display metadata fetched with them."""

    source_id: str
    segments: list[TranscriptSegment]
    title: str
    thumbnail_url: str = ""


class Passage(BaseModel):
    """Timestamped group of segments; the unit stored in a collection.

    The path key is the document key inside the collection, which is what
    makes re-insertion idempotent. Video id and start time are recoverable
    from it at retrieval time.
    """

    video_id: str
    chunk_index: int
    start_segment_index: int
    text: str
    start_time: float  # Seconds
    end_time: float  # Seconds
    path: str

    def index_metadata(self, source_id: str) -> dict[str, Any]:
        """Metadata stored alongside the document in the index."""
        return {
            "video_id": self.video_id,
            "youtube_id": source_id,
            "start_time": str(self.start_time),
            "end_time": str(self.end_time),
            "timestamp_link": (
                f"https://youtube.com/watch?v={source_id}&t={int(self.start_time)}s"
            ),
        }


class IngestionResult(BaseModel):
    """Summary of one ingestion attempt for a single video."""

    video_id: str
    status: VideoStatus
    skipped: bool = False
    title: str | None = None
    total_segments: int = 0
    total_passages: int = 0
    passages_inserted: int = 0
    passages_skipped: int = 0
    collection_name: str | None = None


class SnippetResult(BaseModel):
    """One passage returned by a collection query.

    Scores are provider-defined (higher is more relevant) and only comparable
    within a single retrieval request. A missing score excludes the result
    from ranking.
    """

    content: str
    path: str
    score: float | None = None
