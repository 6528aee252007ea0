"""Ingestion coordinator: fetch -> chunk -> collection -> embed -> finalize."""

from collections.abc import Awaitable
from typing import TypeVar

from openai import AsyncOpenAI
from supabase import Client

from src.utils.errors import (
    CollectionAlreadyExists,
    DocumentAlreadyExists,
    VideoNotFound,
)
from src.utils.logging import get_logger

from .chunking_service import ChunkingService, collection_name_for
from .config import KnowledgeBaseConfig, get_config
from .embedding_service import EmbeddingService
from .index_service import IndexService
from .schemas import IngestionResult, Passage, VideoStatus, VideoTranscript
from .state import StepResult, transition
from .video_store import VideoStore
from .youtube_service import YouTubeService

logger = get_logger(__name__)

T = TypeVar("T")


class IngestionCoordinator:
    """Drives one video through the ingestion state machine.

    Each step returns a StepResult; the coordinator decides the terminal
    transition. A failed step moves the video to FAILED with the error
    message as failure_reason, and the error is re-raised so the durable
    workflow runner can apply its own retry policy. That is the only path
    to FAILED.

    Side effects are limited to the video's row and its collection.
    """

    def __init__(
        self,
        video_store: VideoStore,
        youtube_service: YouTubeService,
        chunking_service: ChunkingService,
        embedding_service: EmbeddingService,
        index_service: IndexService,
        config: KnowledgeBaseConfig | None = None,
    ):
        """Initialize coordinator with explicit collaborators.

        Args:
            video_store: Persistent store for the video row.
            youtube_service: Transcript acquisition adapter.
            chunking_service: Segment grouping service.
            embedding_service: Passage vectorizer.
            index_service: Per-video collection store.
            config: Configuration object. If None, loads from environment.
        """
        self.config = config or get_config()
        self.video_store = video_store
        self.youtube_service = youtube_service
        self.chunking_service = chunking_service
        self.embedding_service = embedding_service
        self.index_service = index_service

    async def ingest(self, video_id: str, source_id: str) -> IngestionResult:
        """Ingest one video's transcript into its collection.

        Args:
            video_id: Internal video id (row id, collection and path prefix).
            source_id: YouTube video id used for acquisition.

        Returns:
            IngestionResult describing the attempt.

        Raises:
            IngestionError: Any step failure, after the video is set to FAILED.
            VideoNotFound: If the video row does not exist.
            InvalidStatusTransition: If the row's status cannot enter PROCESSING.
        """
        log = logger.bind(video_id=video_id, source_id=source_id)
        log.info("ingestion_started")

        video = await self.video_store.get_video(video_id)
        if video is None:
            raise VideoNotFound(f"Video {video_id} not found")

        if video.status == VideoStatus.READY:
            log.info("video_already_ready")
            return IngestionResult(
                video_id=video_id,
                status=VideoStatus.READY,
                skipped=True,
                title=video.title,
            )

        await self._enter_processing(video_id, video.status)

        collection = collection_name_for(video_id)

        # 1. Fetch transcript, title and thumbnail
        transcript: VideoTranscript = await self._settle(
            video_id,
            await self._run_step("fetch-transcript", self.youtube_service.fetch(source_id)),
        )

        # 2. Chunk into passages
        passages: list[Passage] = await self._settle(
            video_id,
            await self._run_step("chunk-transcript", self._chunk(video_id, transcript)),
        )

        # 3. Ensure the collection exists
        await self._settle(
            video_id,
            await self._run_step(
                "create-collection", self._ensure_collection(collection, video_id)
            ),
        )

        # 4. Embed and insert passages
        inserted, skipped = await self._settle(
            video_id,
            await self._run_step("embed-chunks", self._embed(collection, source_id, passages)),
        )

        # 5. Mark READY with fetched details
        await self._settle(
            video_id,
            await self._run_step(
                "update-video-details",
                self.video_store.update_status(
                    video_id,
                    transition(VideoStatus.PROCESSING, VideoStatus.READY),
                    title=transcript.title,
                    thumbnail_url=transcript.thumbnail_url,
                ),
            ),
        )

        log.info(
            "ingestion_completed",
            title=transcript.title,
            total_segments=len(transcript.segments),
            total_passages=len(passages),
            passages_inserted=inserted,
            passages_skipped=skipped,
        )
        return IngestionResult(
            video_id=video_id,
            status=VideoStatus.READY,
            title=transcript.title,
            total_segments=len(transcript.segments),
            total_passages=len(passages),
            passages_inserted=inserted,
            passages_skipped=skipped,
            collection_name=collection,
        )

    async def _enter_processing(self, video_id: str, current: VideoStatus) -> None:
        """Move the row to PROCESSING from wherever the runner found it.

        A FAILED row (runner-level retry) takes the retry edge to QUEUED first.
        A PROCESSING row is an interrupted attempt and resumes as is.
        """
        if current == VideoStatus.PROCESSING:
            logger.info("ingestion_resumed", video_id=video_id)
            return

        if current == VideoStatus.FAILED:
            current = transition(current, VideoStatus.QUEUED)
            await self.video_store.update_status(video_id, current)

        await self.video_store.update_status(
            video_id, transition(current, VideoStatus.PROCESSING)
        )

    async def _run_step(self, step: str, work: Awaitable[T]) -> StepResult[T]:
        """Await one step and capture its outcome."""
        logger.info("step_started", step=step)
        try:
            value = await work
        except Exception as e:
            logger.exception("step_failed", step=step, error_type=type(e).__name__)
            return StepResult.failure(step, e)
        logger.info("step_completed", step=step)
        return StepResult.success(step, value)

    async def _settle(self, video_id: str, result: StepResult[T]) -> T:
        """Return a step's value, or mark the video FAILED and re-raise its error."""
        if not result.ok:
            await self._mark_failed(video_id, result)
        return result.unwrap()

    async def _chunk(self, video_id: str, transcript: VideoTranscript) -> list[Passage]:
        return self.chunking_service.chunk_segments(video_id, transcript.segments)

    async def _ensure_collection(self, collection: str, video_id: str) -> None:
        try:
            await self.index_service.create_collection(collection, video_id)
        except CollectionAlreadyExists:
            logger.info("collection_already_exists", collection=collection)

    async def _embed(
        self, collection: str, source_id: str, passages: list[Passage]
    ) -> tuple[int, int]:
        """Insert every passage not yet stored; duplicates count as success.

        Returns:
            (inserted, skipped) counts.
        """
        existing = await self.index_service.existing_paths(collection)
        pending = [p for p in passages if p.path not in existing]
        skipped = len(passages) - len(pending)

        embeddings = await self.embedding_service.embed_batch([p.text for p in pending])

        inserted = 0
        for passage, embedding in zip(pending, embeddings, strict=True):
            try:
                await self.index_service.add_document(
                    collection,
                    passage.path,
                    passage.text,
                    passage.index_metadata(source_id),
                    embedding=embedding,
                )
                inserted += 1
            except DocumentAlreadyExists:
                logger.info("skipping_existing_passage", path=passage.path)
                skipped += 1

            if (inserted + skipped) % 10 == 0:
                logger.info(
                    "embedding_progress",
                    collection=collection,
                    done=inserted + skipped,
                    total=len(passages),
                )

        logger.info(
            "passages_embedded",
            collection=collection,
            inserted=inserted,
            skipped=skipped,
        )
        return inserted, skipped

    async def _mark_failed(self, video_id: str, result: StepResult) -> None:
        """Record the failing step's error on the video row."""
        reason = str(result.error) or type(result.error).__name__
        logger.error("ingestion_failed", video_id=video_id, step=result.step, reason=reason)
        try:
            await self.video_store.update_status(
                video_id,
                transition(VideoStatus.PROCESSING, VideoStatus.FAILED),
                failure_reason=reason,
            )
        except Exception:
            # The runner retries on the step error re-raised by the caller.
            logger.exception("failure_status_not_recorded", video_id=video_id)


def build_coordinator(
    config: KnowledgeBaseConfig,
    supabase_client: Client,
    embedding_client: AsyncOpenAI | None = None,
) -> IngestionCoordinator:
    """Wire a coordinator for one workflow execution from shared clients."""
    embedding_service = EmbeddingService(config, client=embedding_client)
    return IngestionCoordinator(
        video_store=VideoStore(supabase_client),
        youtube_service=YouTubeService(config),
        chunking_service=ChunkingService(config),
        embedding_service=embedding_service,
        index_service=IndexService(supabase_client, embedding_service),
        config=config,
    )
