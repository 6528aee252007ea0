"""Embedding service for generating text embeddings via OpenAI-compatible APIs."""

import asyncio

from openai import AsyncOpenAI

from src.utils.clients import get_embedding_client
from src.utils.errors import EmbeddingFailure
from src.utils.logging import get_logger

from .config import KnowledgeBaseConfig

logger = get_logger(__name__)


class EmbeddingService:
    """Service for generating text embeddings.

    This service supports multiple embedding providers (OpenAI, Ollama, OpenRouter)
    through OpenAI-compatible APIs. It vectorizes passages at indexing time and
    queries at retrieval time, so both sides must use the same model.
    """

    def __init__(self, config: KnowledgeBaseConfig, client: AsyncOpenAI | None = None):
        """Initialize embedding service with configuration.

        Args:
            config: Configuration object with embedding provider settings.
            client: Pre-built client to reuse. If None, one is built from config.
        """
        self.config = config
        self.client = client or get_embedding_client(config)
        logger.info(
            "embedding_service_initialized",
            provider=config.embedding_provider,
            model=config.embedding_model,
            base_url=config.embedding_base_url,
        )

    async def embed_text(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: Text content to embed.

        Returns:
            Embedding vector as a list of floats.

        Raises:
            EmbeddingFailure: If the provider call fails.
        """
        try:
            response = await self.client.embeddings.create(
                input=text,
                model=self.config.embedding_model,
            )
        except Exception as e:
            logger.exception(
                "embedding_failed",
                text_length=len(text),
                error_type=type(e).__name__,
            )
            raise EmbeddingFailure(f"Failed to embed text: {e}") from e

        embedding = response.data[0].embedding
        logger.debug(
            "embedding_generated",
            text_length=len(text),
            embedding_dim=len(embedding),
        )
        return embedding

    async def embed_batch(
        self, texts: list[str], batch_size: int | None = None
    ) -> list[list[float]]:
        """Generate embeddings for multiple texts with batching.

        Texts inside one batch are embedded in parallel; batches run one after
        another to stay under provider rate limits.

        Args:
            texts: List of text strings to embed.
            batch_size: Texts embedded in parallel. Defaults to config.

        Returns:
            List of embedding vectors in the same order as input texts.

        Raises:
            EmbeddingFailure: If any embedding in any batch fails.
        """
        batch_size = batch_size or self.config.embedding_batch_size
        logger.info(
            "batch_embedding_started",
            count=len(texts),
            batch_size=batch_size,
        )

        embeddings: list[list[float]] = []

        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            batch_embeddings = await asyncio.gather(
                *[self.embed_text(text) for text in batch]
            )
            embeddings.extend(batch_embeddings)

            logger.debug(
                "batch_completed",
                batch_num=i // batch_size + 1,
                count=len(batch),
            )

        logger.info(
            "batch_embedding_completed",
            total_embeddings=len(embeddings),
        )
        return embeddings
