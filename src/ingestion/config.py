"""Configuration module for transcript ingestion and indexing."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class KnowledgeBaseConfig(BaseModel):
    """Configuration for transcript acquisition, chunking, embedding and storage.

    All settings can be overridden via environment variables. The same config
    is shared by the ingestion coordinator and the retrieval side, which needs
    the Supabase and embedding settings to query per-video collections.
    """

    # Supadata API settings
    supadata_api_key: str = Field(
        default_factory=lambda: os.getenv("SUPADATA_API_KEY", "")
    )

    # Acquisition settings
    acquisition_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ACQUISITION_TIMEOUT_SECONDS", "30"))
    )
    channel_video_limit: int = Field(
        default_factory=lambda: int(os.getenv("CHANNEL_VIDEO_LIMIT", "10"))
    )

    # Chunking settings (segment-group based)
    chunk_group_size: int = Field(
        default_factory=lambda: int(os.getenv("CHUNK_GROUP_SIZE", "10")), ge=1
    )

    # Embedding settings
    embedding_provider: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_PROVIDER", "openai")
    )
    embedding_base_url: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_BASE_URL", "https://api.openai.com/v1"
        )
    )
    embedding_api_key: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_API_KEY", "")
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL_CHOICE", "text-embedding-3-small"
        )
    )
    embedding_batch_size: int = Field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "5"))
    )

    # Database settings
    supabase_url: str = Field(default_factory=lambda: os.getenv("SUPABASE_URL", ""))
    supabase_key: str = Field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    # Durable workflow runner event endpoint
    ingest_event_url: str = Field(
        default_factory=lambda: os.getenv("INGEST_EVENT_URL", "")
    )
    ingest_event_key: str = Field(
        default_factory=lambda: os.getenv("INGEST_EVENT_KEY", "")
    )


def get_config() -> KnowledgeBaseConfig:
    """Get validated configuration instance.

    Returns:
        KnowledgeBaseConfig: Validated configuration object with all settings.

    Raises:
        ValidationError: If environment variables are present but invalid.
    """
    return KnowledgeBaseConfig()
