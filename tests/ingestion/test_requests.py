"""Unit tests for ingestion requests, retries and event dispatch."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from postgrest.exceptions import APIError

from src.ingestion.config import KnowledgeBaseConfig
from src.ingestion.requests import (
    INGEST_EVENT_NAME,
    PLACEHOLDER_TITLE,
    IngestionDispatcher,
    extract_channel,
    extract_video_id,
    request_ingestion,
    retry_failed_video,
)
from src.ingestion.schemas import Video, VideoStatus
from src.utils.errors import InvalidStatusTransition, InvalidVideoUrl, VideoNotFound


def _created(video: Video) -> Video:
    return video


@pytest.mark.unit
class TestUrlParsing:
    """Test suite for video and channel URL parsing."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/embed/dQw4w9WgXcQ",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=42s",
        ],
    )
    def test_extract_video_id(self, url: str) -> None:
        """Test video id extraction from common URL shapes."""
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    def test_extract_video_id_invalid(self) -> None:
        """Test a URL without a video id."""
        assert extract_video_id("https://example.com") is None

    def test_extract_channel_handle(self) -> None:
        """Test @handle channel URLs."""
        assert extract_channel("https://www.youtube.com/@coach") == ("handle", "coach")

    def test_extract_channel_id(self) -> None:
        """Test /channel/UC... URLs."""
        channel_id = "UC" + "a" * 22
        assert extract_channel(f"https://www.youtube.com/channel/{channel_id}") == (
            "id",
            channel_id,
        )

    def test_video_url_is_not_channel(self) -> None:
        """Test a watch URL is not mistaken for a channel."""
        assert extract_channel("https://www.youtube.com/watch?v=dQw4w9WgXcQ") is None


@pytest.mark.unit
class TestRequestIngestion:
    """Test suite for queueing videos and channels."""

    @pytest.fixture
    def store(self) -> MagicMock:
        """Create mock video store with an empty library."""
        store = MagicMock()
        store.find_by_source = AsyncMock(return_value=None)
        store.create_video = AsyncMock(side_effect=_created)
        return store

    @pytest.fixture
    def dispatcher(self) -> MagicMock:
        """Create mock dispatcher."""
        dispatcher = MagicMock()
        dispatcher.send = AsyncMock()
        return dispatcher

    @pytest.fixture
    def youtube_service(self) -> MagicMock:
        """Create mock acquisition adapter."""
        service = MagicMock()
        service.get_channel_video_ids = AsyncMock(return_value=[])
        return service

    @pytest.mark.asyncio
    async def test_queue_video(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a new video is created QUEUED and an event is sent."""
        result = await request_ingestion(
            "https://youtu.be/dQw4w9WgXcQ", "profile-1", store, dispatcher, youtube_service
        )

        assert result.success is True
        assert result.message == "Video is now queued for ingestion!"
        assert len(result.video_ids) == 1

        created: Video = store.create_video.call_args.args[0]
        assert created.source_id == "dQw4w9WgXcQ"
        assert created.profile_id == "profile-1"
        assert created.title == PLACEHOLDER_TITLE
        assert created.status == VideoStatus.QUEUED
        dispatcher.send.assert_called_once_with(created.id, "dQw4w9WgXcQ")

    @pytest.mark.asyncio
    async def test_duplicate_video(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a video already in the library is not queued again."""
        store.find_by_source.return_value = Video(id="v1", source_id="dQw4w9WgXcQ")

        result = await request_ingestion(
            "https://youtu.be/dQw4w9WgXcQ", "profile-1", store, dispatcher, youtube_service
        )

        assert result.success is False
        assert result.message == "This video is already in your library!"
        store.create_video.assert_not_called()
        dispatcher.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicate_insert_race(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a unique violation on insert reports the duplicate message."""
        store.create_video.side_effect = APIError(
            {"message": "duplicate", "code": "23505", "hint": None, "details": None}
        )

        result = await request_ingestion(
            "https://youtu.be/dQw4w9WgXcQ", "profile-1", store, dispatcher, youtube_service
        )

        assert result.success is False
        dispatcher.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_url(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a URL that is neither a video nor a channel."""
        with pytest.raises(InvalidVideoUrl):
            await request_ingestion(
                "https://example.com", "profile-1", store, dispatcher, youtube_service
            )

    @pytest.mark.asyncio
    async def test_channel_ingestion(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a channel URL queues its new videos and counts existing ones."""
        youtube_service.get_channel_video_ids.return_value = ["aaa", "bbb", "ccc"]
        store.find_by_source.side_effect = [
            None,
            Video(id="v2", source_id="bbb"),
            None,
        ]

        result = await request_ingestion(
            "https://www.youtube.com/@coach", "profile-1", store, dispatcher, youtube_service
        )

        youtube_service.get_channel_video_ids.assert_called_once_with("coach")
        assert result.success is True
        assert result.message == "Queued 2 videos from channel for ingestion! (1 already existed)"
        assert len(result.video_ids) == 2
        assert dispatcher.send.call_count == 2

    @pytest.mark.asyncio
    async def test_channel_all_existing(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a channel whose videos are all in the library."""
        youtube_service.get_channel_video_ids.return_value = ["aaa", "bbb"]
        store.find_by_source.return_value = Video(id="v1", source_id="aaa")

        result = await request_ingestion(
            "https://www.youtube.com/@coach", "profile-1", store, dispatcher, youtube_service
        )

        assert result.success is True
        assert result.message == "All 2 videos already in your library!"
        assert result.video_ids == []

    @pytest.mark.asyncio
    async def test_empty_channel(
        self, store: MagicMock, dispatcher: MagicMock, youtube_service: MagicMock
    ) -> None:
        """Test a channel without videos."""
        result = await request_ingestion(
            "https://www.youtube.com/@coach", "profile-1", store, dispatcher, youtube_service
        )

        assert result.success is False
        assert result.message == "No videos found in this channel"


@pytest.mark.unit
class TestRetryFailedVideo:
    """Test suite for the FAILED -> QUEUED retry edge."""

    @pytest.fixture
    def store(self) -> MagicMock:
        """Create mock video store holding a FAILED video."""
        store = MagicMock()
        store.get_video = AsyncMock(
            return_value=Video(
                id="v1",
                source_id="yt123",
                status=VideoStatus.FAILED,
                failure_reason="No transcript available",
            )
        )
        store.update_status = AsyncMock()
        return store

    @pytest.fixture
    def dispatcher(self) -> MagicMock:
        """Create mock dispatcher."""
        dispatcher = MagicMock()
        dispatcher.send = AsyncMock()
        return dispatcher

    @pytest.mark.asyncio
    async def test_retry_failed_video(self, store: MagicMock, dispatcher: MagicMock) -> None:
        """Test a FAILED video is re-queued and re-dispatched."""
        result = await retry_failed_video("v1", "profile-1", store, dispatcher)

        assert result.success is True
        assert result.video_ids == ["v1"]
        store.get_video.assert_called_once_with("v1", profile_id="profile-1")
        store.update_status.assert_called_once_with("v1", VideoStatus.QUEUED)
        dispatcher.send.assert_called_once_with("v1", "yt123")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status", [VideoStatus.QUEUED, VideoStatus.PROCESSING, VideoStatus.READY]
    )
    async def test_retry_rejects_non_failed(
        self, store: MagicMock, dispatcher: MagicMock, status: VideoStatus
    ) -> None:
        """Test only FAILED videos can be retried."""
        store.get_video.return_value = Video(id="v1", source_id="yt123", status=status)

        with pytest.raises(InvalidStatusTransition):
            await retry_failed_video("v1", "profile-1", store, dispatcher)

        store.update_status.assert_not_called()
        dispatcher.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_retry_unknown_video(self, store: MagicMock, dispatcher: MagicMock) -> None:
        """Test retrying a video the profile does not own."""
        store.get_video.return_value = None

        with pytest.raises(VideoNotFound):
            await retry_failed_video("v1", "profile-1", store, dispatcher)


@pytest.mark.unit
class TestIngestionDispatcher:
    """Test suite for IngestionDispatcher class."""

    @pytest.fixture
    def http_client(self) -> MagicMock:
        """Create mock HTTP client."""
        client = MagicMock()
        client.post = AsyncMock(return_value=MagicMock())
        return client

    @pytest.mark.asyncio
    async def test_send(self, http_client: MagicMock) -> None:
        """Test the event payload and endpoint."""
        config = KnowledgeBaseConfig(
            ingest_event_url="https://runner.example/e/", ingest_event_key="key123"
        )
        dispatcher = IngestionDispatcher(config, http_client)

        await dispatcher.send("v1", "yt123")

        http_client.post.assert_called_once_with(
            "https://runner.example/e/key123",
            json={
                "name": INGEST_EVENT_NAME,
                "data": {"videoId": "v1", "youtubeId": "yt123"},
            },
        )
        http_client.post.return_value.raise_for_status.assert_called_once()

    def test_event_url_without_key(self, http_client: MagicMock) -> None:
        """Test the endpoint is used as is without an event key."""
        config = KnowledgeBaseConfig(
            ingest_event_url="https://runner.example/e", ingest_event_key=""
        )
        assert IngestionDispatcher(config, http_client).event_url == "https://runner.example/e"

    @pytest.mark.asyncio
    async def test_send_without_endpoint(self, http_client: MagicMock) -> None:
        """Test sending fails when no endpoint is configured."""
        config = KnowledgeBaseConfig(ingest_event_url="", ingest_event_key="")

        with pytest.raises(ValueError, match="INGEST_EVENT_URL"):
            await IngestionDispatcher(config, http_client).send("v1", "yt123")

        http_client.post.assert_not_called()
