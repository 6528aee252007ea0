"""Chat dependency definitions.

Defines the ChatDeps dataclass that holds the shared clients and settings a
chat or compose request is built from.
"""

from dataclasses import dataclass

from openai import AsyncOpenAI
from supabase import Client

from src.ingestion.config import KnowledgeBaseConfig
from src.retrieval.config import RetrievalConfig


@dataclass
class ChatDeps:
    """Runtime dependencies for one chat or compose request.

    The clients are application-wide and owned by the API lifespan; services
    built from them are scoped to the request.

    Attributes:
        supabase: Supabase client for collection queries and video lookups.
        embedding_client: AsyncOpenAI client for query embeddings.
        kb_config: Embedding and storage settings shared with ingestion.
        retrieval_config: Fan-out timeout and context limits.
    """

    supabase: Client
    embedding_client: AsyncOpenAI
    kb_config: KnowledgeBaseConfig
    retrieval_config: RetrievalConfig
