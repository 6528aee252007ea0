"""FastAPI application for the video knowledge base.

Provides streaming chat and compose endpoints grounded in the scoped videos'
transcripts, the ingestion endpoint invoked by the durable workflow runner,
ingestion requests and retries, citation rendering and conversation export.
"""

import json
import os
from urllib.parse import quote
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response, StreamingResponse
from httpx import AsyncClient
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field
from supabase import Client

from src.agent.chat import ChatService, PreparedGeneration, build_chat_service
from src.agent.deps import ChatDeps
from src.agent.generation import ChatMessage, CompletionCallback
from src.api.db_utils import (
    fetch_conversation,
    fetch_conversation_video_ids,
    fetch_messages,
    new_id,
    save_chat_exchange,
)
from src.ingestion.config import KnowledgeBaseConfig
from src.ingestion.config import get_config as get_kb_config
from src.ingestion.pipeline import IngestionCoordinator, build_coordinator
from src.ingestion.requests import (
    IngestionDispatcher,
    IngestionRequestResult,
    request_ingestion,
    retry_failed_video,
)
from src.ingestion.schemas import IngestionResult
from src.ingestion.video_store import VideoStore
from src.ingestion.youtube_service import YouTubeService
from src.retrieval.citations import VideoRef, render_citations
from src.retrieval.config import RetrievalConfig
from src.retrieval.config import get_config as get_retrieval_config
from src.retrieval.context import ComposeTemplate
from src.retrieval.export import ExportFormat, ExportMessage, export_conversation
from src.utils.clients import get_embedding_client, get_supabase_client
from src.utils.errors import (
    GenerationFailure,
    InvalidStatusTransition,
    InvalidVideoUrl,
    KnowledgeBaseError,
    UnsupportedExportFormat,
    VideoNotFound,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Check if we're in production
is_production = os.getenv("ENVIRONMENT") == "production"

if not is_production:
    # Development: prioritize .env file
    project_root = Path(__file__).resolve().parent.parent.parent
    dotenv_path = project_root / ".env"
    load_dotenv(dotenv_path, override=True)
else:
    # Production: use cloud platform env vars only
    load_dotenv()

GENERIC_ERROR_MESSAGE = "Something went wrong while generating a response. Please try again."


# ==============================================================================
# Lifespan Management
# ==============================================================================


async def lifespan(app: FastAPI):  # type: ignore[misc]
    """Lifecycle manager for the FastAPI application.

    Builds the application-wide clients once and stores them on app.state.
    """
    logger.info("application_startup_started")

    try:
        config = get_kb_config()
        app.state.supabase = get_supabase_client(config)
        app.state.embedding_client = get_embedding_client(config)
        app.state.http_client = AsyncClient()

        logger.info(
            "application_startup_completed",
            clients=["supabase", "embedding", "http"],
        )

    except Exception:
        logger.exception("application_startup_failed")
        raise

    yield  # Application runs here

    # Shutdown: Clean up resources
    logger.info("application_shutdown_started")

    await app.state.http_client.aclose()

    logger.info("application_shutdown_completed")


# ==============================================================================
# FastAPI Application Setup
# ==============================================================================

app = FastAPI(
    title="Video Knowledge Base API",
    description="Grounded chat over ingested video transcripts with timestamped citations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==============================================================================
# Dependencies
# ==============================================================================


def _app_client(request: Request, name: str) -> Any:
    client = getattr(request.app.state, name, None)
    if client is None:
        logger.error("client_not_initialized", client=name)
        raise HTTPException(status_code=503, detail=f"{name} client not initialized")
    return client


def get_supabase(request: Request) -> Client:
    return _app_client(request, "supabase")


def get_embedding(request: Request) -> AsyncOpenAI:
    return _app_client(request, "embedding_client")


def get_http_client(request: Request) -> AsyncClient:
    return _app_client(request, "http_client")


def get_chat_deps(
    supabase: Client = Depends(get_supabase),
    embedding_client: AsyncOpenAI = Depends(get_embedding),
    kb_config: KnowledgeBaseConfig = Depends(get_kb_config),
    retrieval_config: RetrievalConfig = Depends(get_retrieval_config),
) -> ChatDeps:
    return ChatDeps(
        supabase=supabase,
        embedding_client=embedding_client,
        kb_config=kb_config,
        retrieval_config=retrieval_config,
    )


def get_video_store(supabase: Client = Depends(get_supabase)) -> VideoStore:
    return VideoStore(supabase)


def get_dispatcher(
    config: KnowledgeBaseConfig = Depends(get_kb_config),
    http_client: AsyncClient = Depends(get_http_client),
) -> IngestionDispatcher:
    return IngestionDispatcher(config, http_client)


def get_youtube_service(
    config: KnowledgeBaseConfig = Depends(get_kb_config),
) -> YouTubeService:
    return YouTubeService(config)


def get_coordinator(
    config: KnowledgeBaseConfig = Depends(get_kb_config),
    supabase: Client = Depends(get_supabase),
    embedding_client: AsyncOpenAI = Depends(get_embedding),
) -> IngestionCoordinator:
    return build_coordinator(config, supabase, embedding_client)


# ==============================================================================
# Request/Response Models
# ==============================================================================


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    messages: list[ChatMessage] = Field(min_length=1)
    scoped_video_ids: list[str] = Field(min_length=1)
    conversation_id: str | None = None
    profile_id: str | None = None
    model_id: str | None = None


class ComposeRequest(BaseModel):
    """Request model for the compose endpoint."""

    template: ComposeTemplate
    video_ids: list[str] = Field(min_length=1)
    custom_prompt: str | None = None
    model_id: str | None = None


class IngestEvent(BaseModel):
    """Payload of a `youtube/ingest` event, as delivered by the workflow runner."""

    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(alias="videoId", min_length=1)
    youtube_id: str = Field(alias="youtubeId", min_length=1)


class IngestionRequest(BaseModel):
    """Request model for queueing a video or channel URL."""

    url: str = Field(min_length=1)
    profile_id: str = Field(min_length=1)


class RetryRequest(BaseModel):
    profile_id: str = Field(min_length=1)


class RenderCitationsRequest(BaseModel):
    """Request model for resolving citations in one message."""

    text: str
    video_ids: list[str] = Field(default_factory=list)


# ==============================================================================
# Helper Functions
# ==============================================================================


def _json_line(data: dict[str, Any]) -> bytes:
    return json.dumps(data).encode("utf-8") + b"\n"


async def stream_error_response(error_message: str, conversation_id: str | None = None):
    """Create a streaming response for error messages.

    Args:
        error_message: The error message to display to the user.
        conversation_id: The current conversation ID, if any.

    Yields:
        Encoded JSON chunks for the streaming response.
    """
    # First yield the error message as text
    yield _json_line({"text": error_message})

    # Then yield a final chunk with complete flag
    yield _json_line(
        {
            "text": error_message,
            "conversation_id": conversation_id,
            "error": error_message,
            "complete": True,
        }
    )


async def stream_generation(
    service: ChatService,
    prepared: PreparedGeneration,
    conversation_id: str | None = None,
    on_complete: CompletionCallback | None = None,
):
    """Stream model deltas as JSON lines, ending with a completion chunk.

    A failure after streaming has started ends the stream with the generic
    error message.
    """
    chunks: list[str] = []
    try:
        async for delta in service.stream(prepared, on_complete=on_complete):
            chunks.append(delta)
            yield _json_line({"text": delta})
    except GenerationFailure:
        async for line in stream_error_response(GENERIC_ERROR_MESSAGE, conversation_id):
            yield line
        return

    yield _json_line(
        {
            "text": "".join(chunks),
            "conversation_id": conversation_id,
            "complete": True,
        }
    )


def attachment_disposition(filename: str) -> str:
    """Content-Disposition with an ASCII fallback name and the UTF-8 name (RFC 6266)."""
    fallback = "".join(
        ch if ch.isascii() and ch.isprintable() and ch not in '"\\' else "_" for ch in filename
    )
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


async def _video_refs(store: VideoStore, video_ids: list[str]) -> dict[str, VideoRef]:
    videos = await store.get_videos(video_ids)
    return {v.id: VideoRef(source_id=v.source_id, title=v.title) for v in videos}


# ==============================================================================
# API Endpoints
# ==============================================================================


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint.

    Returns:
        Health status and timestamp.
    """
    state = request.app.state
    return {
        "status": "healthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "services": {
            "supabase": getattr(state, "supabase", None) is not None,
            "embedding_client": getattr(state, "embedding_client", None) is not None,
            "http_client": getattr(state, "http_client", None) is not None,
        },
    }


@app.post("/api/chat")
async def chat_endpoint(
    request: ChatRequest,
    deps: ChatDeps = Depends(get_chat_deps),
):
    """Grounded chat over the scoped videos with streaming response.

    Args:
        request: Conversation turns, scoped videos and optional model id.
        deps: Shared clients and settings.

    Returns:
        StreamingResponse of JSON lines with text deltas and a final chunk.
    """
    last = request.messages[-1]
    if last.role != "user" or not last.content.strip():
        raise HTTPException(status_code=400, detail="Last message must be a non-empty user message")

    new_conversation = request.conversation_id is None
    conversation_id = request.conversation_id or new_id()

    logger.info(
        "chat_request_started",
        conversation_id=conversation_id,
        video_count=len(request.scoped_video_ids),
        message_count=len(request.messages),
    )

    try:
        service = build_chat_service(deps, request.model_id)
        prepared = await service.prepare_chat(request.messages, request.scoped_video_ids)
    except Exception:
        logger.exception("chat_request_failed", conversation_id=conversation_id)
        return StreamingResponse(
            stream_error_response(GENERIC_ERROR_MESSAGE, conversation_id),
            media_type="text/plain",
        )

    async def persist_exchange(answer: str) -> None:
        await save_chat_exchange(
            deps.supabase,
            conversation_id,
            prepared.user_prompt,
            answer,
            new_conversation=new_conversation,
            profile_id=request.profile_id,
            video_ids=request.scoped_video_ids,
        )

    # A new conversation can only be saved for a known profile
    can_persist = not new_conversation or request.profile_id is not None

    return StreamingResponse(
        stream_generation(
            service, prepared, conversation_id, persist_exchange if can_persist else None
        ),
        media_type="text/plain",
    )


@app.post("/api/compose")
async def compose_endpoint(
    request: ComposeRequest,
    deps: ChatDeps = Depends(get_chat_deps),
):
    """Compose long-form content from the selected videos with streaming response."""
    logger.info(
        "compose_request_started",
        template=request.template.value,
        video_count=len(request.video_ids),
    )

    try:
        service = build_chat_service(deps, request.model_id)
        prepared = await service.prepare_compose(
            request.template, request.video_ids, request.custom_prompt
        )
    except Exception:
        logger.exception("compose_request_failed", template=request.template.value)
        return StreamingResponse(
            stream_error_response(GENERIC_ERROR_MESSAGE),
            media_type="text/plain",
        )

    return StreamingResponse(stream_generation(service, prepared), media_type="text/plain")


@app.post("/api/ingest", response_model=IngestionResult)
async def ingest_endpoint(
    event: IngestEvent,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Run one ingestion attempt for the workflow runner.

    Any failure is returned as a non-2xx status so the runner retries; the
    video row already carries the failure reason.
    """
    try:
        return await coordinator.ingest(event.video_id, event.youtube_id)
    except VideoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except KnowledgeBaseError as e:
        logger.error(
            "ingest_request_failed",
            video_id=event.video_id,
            error_type=type(e).__name__,
        )
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/videos", response_model=IngestionRequestResult)
async def request_ingestion_endpoint(
    request: IngestionRequest,
    store: VideoStore = Depends(get_video_store),
    dispatcher: IngestionDispatcher = Depends(get_dispatcher),
    youtube_service: YouTubeService = Depends(get_youtube_service),
):
    """Queue a video URL, or a channel's latest uploads, for ingestion."""
    try:
        return await request_ingestion(
            request.url, request.profile_id, store, dispatcher, youtube_service
        )
    except InvalidVideoUrl as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/api/videos/{video_id}/retry", response_model=IngestionRequestResult)
async def retry_video_endpoint(
    video_id: str,
    request: RetryRequest,
    store: VideoStore = Depends(get_video_store),
    dispatcher: IngestionDispatcher = Depends(get_dispatcher),
):
    """Re-queue a FAILED video."""
    try:
        return await retry_failed_video(video_id, request.profile_id, store, dispatcher)
    except VideoNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition:
        raise HTTPException(status_code=409, detail="Only failed videos can be retried")


@app.post("/api/citations/render")
async def render_citations_endpoint(
    request: RenderCitationsRequest,
    store: VideoStore = Depends(get_video_store),
):
    """Resolve citation tokens in a message into numbered, linkable markers."""
    videos = await _video_refs(store, request.video_ids)
    parts = render_citations(request.text, videos)
    return {"parts": [part.model_dump() for part in parts]}


@app.get("/api/conversations/{conversation_id}/export")
async def export_conversation_endpoint(
    conversation_id: str,
    export_format: ExportFormat = Query(ExportFormat.TXT, alias="format"),
    supabase: Client = Depends(get_supabase),
    store: VideoStore = Depends(get_video_store),
):
    """Download a conversation as text or markdown with citations as links."""
    conversation = await fetch_conversation(supabase, conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = await fetch_messages(supabase, conversation_id)
    videos = await _video_refs(
        store, await fetch_conversation_video_ids(supabase, conversation_id)
    )

    try:
        exported = export_conversation(
            title=conversation["title"],
            created_at=datetime.fromisoformat(conversation["created_at"]),
            messages=[ExportMessage(**message) for message in messages],
            videos=videos,
            export_format=export_format,
        )
    except UnsupportedExportFormat as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("conversation_exported", conversation_id=conversation_id, format=export_format.value)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={"Content-Disposition": attachment_disposition(exported.filename)},
    )
