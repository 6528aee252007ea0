"""Unit tests for embedding service."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.ingestion.config import KnowledgeBaseConfig
from src.ingestion.embedding_service import EmbeddingService
from src.utils.errors import EmbeddingFailure


def embedding_response(vector: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=vector)]
    return response


@pytest.mark.unit
class TestEmbeddingService:
    """Test suite for EmbeddingService class."""

    @pytest.fixture
    def config_openai(self) -> KnowledgeBaseConfig:
        """Create test configuration for OpenAI provider."""
        return KnowledgeBaseConfig(
            embedding_provider="openai",
            embedding_base_url="https://api.openai.com/v1",
            embedding_api_key="test_api_key",
            embedding_model="text-embedding-3-small",
            embedding_batch_size=2,
        )

    @pytest.fixture
    def config_ollama(self) -> KnowledgeBaseConfig:
        """Create test configuration for Ollama provider."""
        return KnowledgeBaseConfig(
            embedding_provider="ollama",
            embedding_base_url="http://localhost:11434/v1",
            embedding_model="nomic-embed-text",
        )

    @pytest.fixture
    def mock_openai_client(self) -> MagicMock:
        """Create mock OpenAI client."""
        mock_client = MagicMock()
        mock_client.embeddings = MagicMock()
        return mock_client

    def test_service_initialization_openai(self, config_openai: KnowledgeBaseConfig) -> None:
        """Test service initialization with OpenAI provider."""
        with patch("src.utils.clients.AsyncOpenAI") as mock_openai:
            service = EmbeddingService(config_openai)

            assert service.config == config_openai
            mock_openai.assert_called_once_with(
                base_url="https://api.openai.com/v1",
                api_key="test_api_key",
            )

    def test_service_initialization_ollama(self, config_ollama: KnowledgeBaseConfig) -> None:
        """Test service initialization with Ollama provider."""
        with patch("src.utils.clients.AsyncOpenAI") as mock_openai:
            EmbeddingService(config_ollama)

            # Ollama should use "ollama" as API key
            mock_openai.assert_called_once_with(
                base_url="http://localhost:11434/v1",
                api_key="ollama",
            )

    def test_service_uses_provided_client(
        self, config_openai: KnowledgeBaseConfig, mock_openai_client: MagicMock
    ) -> None:
        """Test a pre-built client is reused."""
        service = EmbeddingService(config_openai, client=mock_openai_client)

        assert service.client is mock_openai_client

    @pytest.mark.asyncio
    async def test_embed_text(
        self, config_openai: KnowledgeBaseConfig, mock_openai_client: MagicMock
    ) -> None:
        """Test embedding a single text."""
        mock_openai_client.embeddings.create = AsyncMock(
            return_value=embedding_response([0.1, 0.2, 0.3])
        )
        service = EmbeddingService(config_openai, client=mock_openai_client)

        result = await service.embed_text("Test text")

        assert result == [0.1, 0.2, 0.3]
        mock_openai_client.embeddings.create.assert_called_once_with(
            input="Test text",
            model="text-embedding-3-small",
        )

    @pytest.mark.asyncio
    async def test_embed_text_failure(
        self, config_openai: KnowledgeBaseConfig, mock_openai_client: MagicMock
    ) -> None:
        """Test provider errors surface as EmbeddingFailure."""
        mock_openai_client.embeddings.create = AsyncMock(side_effect=Exception("API Error"))
        service = EmbeddingService(config_openai, client=mock_openai_client)

        with pytest.raises(EmbeddingFailure, match="API Error"):
            await service.embed_text("Test text")

    @pytest.mark.asyncio
    async def test_embed_batch_preserves_order(
        self, config_openai: KnowledgeBaseConfig, mock_openai_client: MagicMock
    ) -> None:
        """Test batch embedding returns vectors in input order."""

        async def create(input: str, model: str) -> MagicMock:
            return embedding_response([float(len(input))])

        mock_openai_client.embeddings.create = AsyncMock(side_effect=create)
        service = EmbeddingService(config_openai, client=mock_openai_client)

        result = await service.embed_batch(["a", "bb", "ccc", "dddd", "eeeee"])

        assert result == [[1.0], [2.0], [3.0], [4.0], [5.0]]
        assert mock_openai_client.embeddings.create.call_count == 5

    @pytest.mark.asyncio
    async def test_embed_batch_empty(
        self, config_openai: KnowledgeBaseConfig, mock_openai_client: MagicMock
    ) -> None:
        """Test batch embedding with no texts."""
        mock_openai_client.embeddings.create = AsyncMock()
        service = EmbeddingService(config_openai, client=mock_openai_client)

        result = await service.embed_batch([])

        assert result == []
        mock_openai_client.embeddings.create.assert_not_called()
