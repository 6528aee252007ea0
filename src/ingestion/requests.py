"""Ingestion requests: queue videos from URLs, retry failed videos, dispatch events.

The durable workflow runner is external. Queued videos are handed to it as
`youtube/ingest` events; the runner then calls back into the ingestion
coordinator and retries on failure according to its own policy.
"""

import re
import uuid

import httpx
from postgrest.exceptions import APIError
from pydantic import BaseModel, Field

from src.utils.errors import InvalidVideoUrl, VideoNotFound
from src.utils.logging import get_logger

from .config import KnowledgeBaseConfig
from .index_service import UNIQUE_VIOLATION
from .schemas import Video, VideoStatus
from .state import transition
from .video_store import VideoStore
from .youtube_service import YouTubeService, default_thumbnail_url

logger = get_logger(__name__)

INGEST_EVENT_NAME = "youtube/ingest"
PLACEHOLDER_TITLE = "Fetching title..."

_VIDEO_ID_RE = re.compile(r"(?:v=|/)([0-9A-Za-z_-]{11}).*")
_CHANNEL_PATTERNS = (
    ("id", re.compile(r"/channel/(UC[0-9A-Za-z_-]{22})")),
    ("handle", re.compile(r"/@([0-9A-Za-z_-]+)")),
    ("handle", re.compile(r"/user/([0-9A-Za-z_-]+)")),
    ("handle", re.compile(r"/c/([0-9A-Za-z_-]+)")),
)


def extract_video_id(url: str) -> str | None:
    """Extract the 11-character YouTube video id from a URL."""
    match = _VIDEO_ID_RE.search(url)
    return match.group(1) if match else None


def extract_channel(url: str) -> tuple[str, str] | None:
    """Extract ("id" | "handle", value) from a channel URL, or None."""
    for kind, pattern in _CHANNEL_PATTERNS:
        match = pattern.search(url)
        if match:
            return kind, match.group(1)
    return None


class IngestionRequestResult(BaseModel):
    """Outcome of an ingestion request, retry or channel import."""

    success: bool
    message: str
    video_ids: list[str] = Field(default_factory=list)


class IngestionDispatcher:
    """Sends ingestion events to the durable workflow runner's event endpoint."""

    def __init__(self, config: KnowledgeBaseConfig, http_client: httpx.AsyncClient):
        self.config = config
        self.http_client = http_client

    @property
    def event_url(self) -> str:
        base = self.config.ingest_event_url.rstrip("/")
        if self.config.ingest_event_key:
            return f"{base}/{self.config.ingest_event_key}"
        return base

    async def send(self, video_id: str, source_id: str) -> None:
        """Emit a `youtube/ingest` event for one video.

        Raises:
            ValueError: If no event endpoint is configured.
            httpx.HTTPError: If the runner rejects or cannot receive the event.
        """
        if not self.config.ingest_event_url:
            raise ValueError("INGEST_EVENT_URL environment variable is not set")

        response = await self.http_client.post(
            self.event_url,
            json={
                "name": INGEST_EVENT_NAME,
                "data": {"videoId": video_id, "youtubeId": source_id},
            },
        )
        response.raise_for_status()
        logger.info("ingestion_event_sent", video_id=video_id, source_id=source_id)


async def _queue_video(
    store: VideoStore,
    dispatcher: IngestionDispatcher,
    source_id: str,
    profile_id: str,
) -> Video:
    video = await store.create_video(
        Video(
            id=uuid.uuid4().hex,
            source_id=source_id,
            profile_id=profile_id,
            title=PLACEHOLDER_TITLE,
            thumbnail_url=default_thumbnail_url(source_id),
        )
    )
    await dispatcher.send(video.id, video.source_id)
    return video


async def request_ingestion(
    url: str,
    profile_id: str,
    store: VideoStore,
    dispatcher: IngestionDispatcher,
    youtube_service: YouTubeService,
) -> IngestionRequestResult:
    """Queue a video URL, or the latest uploads of a channel URL, for ingestion.

    Videos already in the profile's library are not queued again.

    Raises:
        InvalidVideoUrl: If the URL is neither a channel nor a video URL.
    """
    channel = extract_channel(url)
    if channel is not None:
        return await _request_channel_ingestion(
            channel[1], profile_id, store, dispatcher, youtube_service
        )

    source_id = extract_video_id(url)
    if source_id is None:
        raise InvalidVideoUrl("Invalid YouTube URL. Please provide a video or channel URL.")

    if await store.find_by_source(source_id, profile_id) is not None:
        return IngestionRequestResult(
            success=False, message="This video is already in your library!"
        )

    try:
        video = await _queue_video(store, dispatcher, source_id, profile_id)
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            return IngestionRequestResult(
                success=False, message="This video is already in your library!"
            )
        raise

    logger.info("ingestion_requested", video_id=video.id, source_id=source_id)
    return IngestionRequestResult(
        success=True,
        message="Video is now queued for ingestion!",
        video_ids=[video.id],
    )


async def _request_channel_ingestion(
    channel: str,
    profile_id: str,
    store: VideoStore,
    dispatcher: IngestionDispatcher,
    youtube_service: YouTubeService,
) -> IngestionRequestResult:
    source_ids = await youtube_service.get_channel_video_ids(channel)
    if not source_ids:
        return IngestionRequestResult(success=False, message="No videos found in this channel")

    queued: list[str] = []
    skipped = 0
    for source_id in source_ids:
        if await store.find_by_source(source_id, profile_id) is not None:
            logger.info("skipping_existing_video", source_id=source_id)
            skipped += 1
            continue
        try:
            video = await _queue_video(store, dispatcher, source_id, profile_id)
        except APIError:
            logger.exception("channel_video_queue_failed", source_id=source_id)
            continue
        queued.append(video.id)

    logger.info("channel_ingestion_requested", channel=channel, queued=len(queued), skipped=skipped)

    if not queued and skipped:
        return IngestionRequestResult(
            success=True, message=f"All {skipped} videos already in your library!"
        )

    message = f"Queued {len(queued)} videos from channel for ingestion!"
    if skipped:
        message += f" ({skipped} already existed)"
    return IngestionRequestResult(success=True, message=message, video_ids=queued)


async def retry_failed_video(
    video_id: str,
    profile_id: str,
    store: VideoStore,
    dispatcher: IngestionDispatcher,
) -> IngestionRequestResult:
    """Re-queue a FAILED video and dispatch a new ingestion event.

    Raises:
        VideoNotFound: If the profile owns no such video.
        InvalidStatusTransition: If the video is not FAILED.
    """
    video = await store.get_video(video_id, profile_id=profile_id)
    if video is None:
        raise VideoNotFound(f"Video {video_id} not found")

    # FAILED -> QUEUED clears failure_reason
    await store.update_status(video_id, transition(video.status, VideoStatus.QUEUED))
    await dispatcher.send(video.id, video.source_id)

    logger.info("video_retry_requested", video_id=video_id)
    return IngestionRequestResult(
        success=True, message="Video retry initiated!", video_ids=[video_id]
    )
