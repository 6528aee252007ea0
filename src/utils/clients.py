"""Client initialization utilities.

Provides functions for building the external service clients (Supabase,
OpenAI-compatible embeddings) from configuration. Callers own the clients and
pass them explicitly into the services that need them.
"""

from openai import AsyncOpenAI
from supabase import Client, create_client

from src.ingestion.config import KnowledgeBaseConfig


def get_supabase_client(config: KnowledgeBaseConfig) -> Client:
    """Build a Supabase client with the service role key.

    Args:
        config: Configuration with SUPABASE_URL and SUPABASE_SERVICE_KEY.

    Returns:
        Supabase client.

    Raises:
        ValueError: If the Supabase settings are missing.

    Examples:
        >>> supabase = get_supabase_client(get_config())
    """
    if not config.supabase_url or not config.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY environment variables are required")

    return create_client(config.supabase_url, config.supabase_key)


def get_embedding_client(config: KnowledgeBaseConfig) -> AsyncOpenAI:
    """Build the OpenAI-compatible embedding client.

    Args:
        config: Configuration with embedding provider settings.

    Returns:
        AsyncOpenAI client pointed at EMBEDDING_BASE_URL.

    Raises:
        ValueError: If EMBEDDING_API_KEY is missing for a hosted provider.
    """
    if config.embedding_provider == "ollama":
        return AsyncOpenAI(base_url=config.embedding_base_url, api_key="ollama")

    if not config.embedding_api_key:
        raise ValueError("EMBEDDING_API_KEY environment variable is required")

    return AsyncOpenAI(base_url=config.embedding_base_url, api_key=config.embedding_api_key)
