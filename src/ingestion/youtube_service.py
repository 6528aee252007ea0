"""YouTube service for fetching transcripts and channel uploads via Supadata API."""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from supadata import Supadata, SupadataError

from src.utils.errors import AcquisitionTimeout, TranscriptUnavailable
from src.utils.logging import get_logger

from .config import KnowledgeBaseConfig
from .schemas import TranscriptSegment, VideoTranscript

logger = get_logger(__name__)

T = TypeVar("T")

UNKNOWN_TITLE = "Unknown Title"


def default_thumbnail_url(source_id: str) -> str:
    """Return the public high-quality thumbnail URL for a YouTube video."""
    return f"https://i.ytimg.com/vi/{source_id}/hqdefault.jpg"


def _is_transcript_unavailable(error: Exception) -> bool:
    # The client raises this code for 206 responses from transcript endpoints
    return isinstance(error, SupadataError) and error.error == "transcript-unavailable"


class YouTubeService:
    """Transcript acquisition adapter backed by the Supadata API.

    Every remote call is bounded by `acquisition_timeout_seconds`; the
    Supadata client is synchronous, so calls run in a worker thread and the
    wait is abandoned when the ceiling elapses.
    """

    def __init__(self, config: KnowledgeBaseConfig, client: Supadata | None = None):
        """Initialize YouTube service with configuration.

        Args:
            config: Configuration object with Supadata API key and timeouts.
            client: Pre-built Supadata client. If None, one is built from config.
        """
        self.config = config
        self.client = client or Supadata(api_key=config.supadata_api_key)
        logger.info(
            "youtube_service_initialized",
            api_key_present=bool(config.supadata_api_key),
            timeout_seconds=config.acquisition_timeout_seconds,
        )

    async def _bounded(self, sub_step: str, func: Callable[..., T], **kwargs: Any) -> T:
        """Run a blocking Supadata call under the per-sub-step time ceiling."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, **kwargs),
                timeout=self.config.acquisition_timeout_seconds,
            )
        except TimeoutError as e:
            logger.error(
                "acquisition_timeout",
                sub_step=sub_step,
                timeout_seconds=self.config.acquisition_timeout_seconds,
            )
            raise AcquisitionTimeout(
                f"{sub_step} timed out after {self.config.acquisition_timeout_seconds:g}s"
            ) from e

    async def fetch(self, source_id: str) -> VideoTranscript:
        """Fetch timed transcript segments plus title and thumbnail.

        Args:
            source_id: YouTube video ID.

        Returns:
            VideoTranscript with ordered segments and display metadata.

        Raises:
            TranscriptUnavailable: If the video has no transcript.
            AcquisitionTimeout: If a sub-step exceeds its time ceiling.
        """
        logger.info("fetching_video", source_id=source_id)

        info = await self._bounded("Video info fetch", self.client.youtube.video, id=source_id)
        title = getattr(info, "title", None) or UNKNOWN_TITLE
        thumbnail_url = getattr(info, "thumbnail", None) or default_thumbnail_url(source_id)

        try:
            response = await self._bounded(
                "Transcript fetch",
                self.client.youtube.transcript,
                video_id=source_id,
                text=False,  # Segments with timestamps instead of plain text
            )
        except AcquisitionTimeout:
            raise
        except Exception as e:
            if _is_transcript_unavailable(e):
                logger.warning("transcript_unavailable", source_id=source_id)
                raise TranscriptUnavailable(
                    f"No transcript available for video {source_id}"
                ) from e
            logger.exception(
                "transcript_fetch_error",
                source_id=source_id,
                error_type=type(e).__name__,
            )
            raise

        content = getattr(response, "content", None)
        if not content:
            raise TranscriptUnavailable(f"No transcript available for video {source_id}")

        segments = [
            TranscriptSegment(
                text=seg.text,
                offset_ms=int(seg.offset),
                duration_ms=int(seg.duration),
            )
            for seg in content
            if seg.text and seg.text.strip()
        ]

        logger.info(
            "transcript_fetched",
            source_id=source_id,
            title=title,
            segments=len(segments),
            total_characters=sum(len(s.text) for s in segments),
        )
        return VideoTranscript(
            source_id=source_id,
            segments=segments,
            title=title,
            thumbnail_url=thumbnail_url,
        )

    async def get_channel_video_ids(self, channel: str, limit: int | None = None) -> list[str]:
        """Fetch the latest uploaded video IDs of a channel.

        Args:
            channel: YouTube channel ID, URL, or handle.
            limit: Maximum videos to return. Defaults to config.

        Returns:
            Video IDs, newest first.

        Raises:
            AcquisitionTimeout: If the call exceeds its time ceiling.
        """
        limit = limit or self.config.channel_video_limit
        logger.info("fetching_channel_videos", channel=channel, limit=limit)

        response = await self._bounded(
            "Channel videos fetch",
            self.client.youtube.channel.videos,
            id=channel,
            type="video",  # Exclude shorts and live streams
            limit=limit,
        )
        video_ids = list(response.video_ids)[:limit]

        logger.info("channel_videos_fetched", channel=channel, count=len(video_ids))
        return video_ids
