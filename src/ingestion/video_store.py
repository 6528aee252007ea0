"""Storage service for video rows in Supabase."""

import asyncio
from datetime import datetime
from typing import Any

from postgrest.exceptions import APIError
from supabase import Client

from src.utils.errors import StatusUpdateFailure
from src.utils.logging import get_logger

from .schemas import Video, VideoStatus

logger = get_logger(__name__)

_VIDEO_COLUMNS = (
    "id, youtube_id, profileId, title, thumbnail_url, status, failure_reason, "
    "created_at, updated_at"
)


def _row_to_video(row: dict[str, Any]) -> Video:
    return Video(
        id=row["id"],
        source_id=row["youtube_id"],
        profile_id=row.get("profileId"),
        title=row.get("title") or "",
        thumbnail_url=row.get("thumbnail_url") or "",
        status=VideoStatus(row["status"]),
        failure_reason=row.get("failure_reason"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class VideoStore:
    """Reads and writes the `videos` table.

    The ingestion coordinator is the only writer of status, failure_reason,
    title and thumbnail for a given video id. Request handlers insert QUEUED
    rows and apply the FAILED -> QUEUED retry edge.
    """

    def __init__(self, client: Client):
        """Initialize video store.

        Args:
            client: Supabase client for database operations.
        """
        self.client = client

    async def get_video(self, video_id: str, profile_id: str | None = None) -> Video | None:
        """Fetch a video by internal id, optionally restricted to a profile."""
        query = self.client.table("videos").select(_VIDEO_COLUMNS).eq("id", video_id)
        if profile_id is not None:
            query = query.eq("profileId", profile_id)

        response = await asyncio.to_thread(query.execute)
        if not response.data:
            logger.debug("video_not_found", video_id=video_id)
            return None
        return _row_to_video(response.data[0])

    async def find_by_source(self, source_id: str, profile_id: str) -> Video | None:
        """Fetch a profile's video by its source (YouTube) id."""
        query = (
            self.client.table("videos")
            .select(_VIDEO_COLUMNS)
            .eq("youtube_id", source_id)
            .eq("profileId", profile_id)
        )
        response = await asyncio.to_thread(query.execute)
        return _row_to_video(response.data[0]) if response.data else None

    async def get_videos(self, video_ids: list[str]) -> list[Video]:
        """Fetch several videos by internal id. Unknown ids are omitted."""
        if not video_ids:
            return []
        query = self.client.table("videos").select(_VIDEO_COLUMNS).in_("id", video_ids)
        response = await asyncio.to_thread(query.execute)
        return [_row_to_video(row) for row in response.data or []]

    async def create_video(self, video: Video) -> Video:
        """Insert a new QUEUED video row.

        Raises:
            APIError: If the insert fails, including unique violations on
                (youtube_id, profileId).
        """
        now = datetime.now().isoformat()
        data = {
            "id": video.id,
            "youtube_id": video.source_id,
            "profileId": video.profile_id,
            "title": video.title,
            "thumbnail_url": video.thumbnail_url,
            "status": VideoStatus.QUEUED.value,
            "created_at": now,
            "updated_at": now,
        }
        await asyncio.to_thread(self.client.table("videos").insert(data).execute)
        logger.info("video_created", video_id=video.id, source_id=video.source_id)
        return video.model_copy(update={"status": VideoStatus.QUEUED})

    async def update_status(
        self,
        video_id: str,
        status: VideoStatus,
        failure_reason: str | None = None,
        title: str | None = None,
        thumbnail_url: str | None = None,
    ) -> None:
        """Write a status change to the video row.

        failure_reason is always written so that leaving FAILED clears it.

        Raises:
            StatusUpdateFailure: If the update errors or matches no row.
        """
        data: dict[str, Any] = {
            "status": status.value,
            "failure_reason": failure_reason,
            "updated_at": datetime.now().isoformat(),
        }
        if title is not None:
            data["title"] = title
        if thumbnail_url is not None:
            data["thumbnail_url"] = thumbnail_url

        try:
            response = await asyncio.to_thread(
                self.client.table("videos").update(data).eq("id", video_id).execute
            )
        except APIError as e:
            logger.exception(
                "status_update_failed",
                video_id=video_id,
                status=status.value,
                error_type=type(e).__name__,
            )
            raise StatusUpdateFailure(f"Failed to update video status: {e.message}") from e

        if not response.data:
            logger.error("status_update_matched_no_row", video_id=video_id, status=status.value)
            raise StatusUpdateFailure(f"Failed to update video status: no video {video_id}")

        logger.info("video_status_updated", video_id=video_id, status=status.value)
