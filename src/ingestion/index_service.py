"""Index client for per-video passage collections stored in Supabase (pgvector).

Each video owns one collection row in `collections`; its passages live in
`passages`, keyed by path. Similarity search goes through the
`match_passages` RPC, scoped to a single collection.
"""

import asyncio
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from src.utils.errors import (
    CollectionAlreadyExists,
    CollectionNotFound,
    DocumentAlreadyExists,
    EmbeddingFailure,
    IndexUnavailable,
)
from src.utils.logging import get_logger

from .embedding_service import EmbeddingService
from .schemas import SnippetResult

logger = get_logger(__name__)

UNIQUE_VIOLATION = "23505"
# PostgREST JWT errors: the index as a whole is unusable, not one collection.
_AUTH_ERROR_CODES = {"PGRST301", "PGRST302", "42501"}


class IndexService:
    """Collection store supporting idempotent insertion and nearest-passage query.

    One instance is scoped to a single request or workflow execution; query
    embeddings are memoized for that lifetime so a fan-out over several
    collections embeds the query once.
    """

    def __init__(self, client: Client, embedding_service: EmbeddingService):
        """Initialize index service.

        Args:
            client: Supabase client for database operations.
            embedding_service: Service used to vectorize documents and queries.
        """
        self.client = client
        self.embedding_service = embedding_service
        self._query_embeddings: dict[str, asyncio.Task[list[float]]] = {}

    async def _execute(self, operation: str, query: Any) -> Any:
        """Run a blocking PostgREST query in a worker thread.

        Raises:
            IndexUnavailable: On transport or authentication failures.
            APIError: For any other database error.
        """
        try:
            return await asyncio.to_thread(query.execute)
        except httpx.TransportError as e:
            logger.exception("index_unreachable", operation=operation)
            raise IndexUnavailable(f"Index backend unreachable during {operation}") from e
        except APIError as e:
            if e.code in _AUTH_ERROR_CODES:
                logger.error("index_auth_failed", operation=operation, code=e.code)
                raise IndexUnavailable(f"Index backend rejected credentials during {operation}") from e
            raise

    async def create_collection(self, name: str, video_id: str) -> None:
        """Create a collection.

        Raises:
            CollectionAlreadyExists: If the collection name is taken.
        """
        try:
            await self._execute(
                "create_collection",
                self.client.table("collections").insert({"name": name, "video_id": video_id}),
            )
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise CollectionAlreadyExists(f"Collection {name} already exists") from e
            raise

        logger.info("collection_created", collection=name)

    async def collection_exists(self, name: str) -> bool:
        """Return True if the collection has been created."""
        response = await self._execute(
            "collection_exists",
            self.client.table("collections").select("name").eq("name", name).limit(1),
        )
        return bool(response.data)

    async def existing_paths(self, collection: str) -> set[str]:
        """Return the path keys already stored in a collection."""
        response = await self._execute(
            "existing_paths",
            self.client.table("passages").select("path").eq("collection_name", collection),
        )
        return {row["path"] for row in response.data or []}

    async def add_document(
        self,
        collection: str,
        path: str,
        text: str,
        metadata: dict[str, Any],
        embedding: list[float] | None = None,
    ) -> None:
        """Insert a passage document keyed by its path.

        Args:
            collection: Collection name.
            path: Passage path key (document key).
            text: Passage text.
            metadata: Provenance metadata stored with the document.
            embedding: Precomputed embedding. Computed from `text` if None.

        Raises:
            DocumentAlreadyExists: If the path is already stored.
            EmbeddingFailure: If the embedding cannot be generated.
        """
        if embedding is None:
            embedding = await self.embedding_service.embed_text(text)

        row = {
            "collection_name": collection,
            "path": path,
            "content": text,
            "metadata": metadata,
            "embedding": embedding,
        }
        try:
            await self._execute("add_document", self.client.table("passages").insert(row))
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DocumentAlreadyExists(f"Document {path} already exists") from e
            raise

        logger.debug("document_added", collection=collection, path=path)

    async def _embed_query(self, query: str) -> list[float]:
        # Concurrent callers share one in-flight embedding; shield keeps a
        # timed-out caller from cancelling it for the others.
        task = self._query_embeddings.get(query)
        if task is None:
            task = asyncio.ensure_future(self.embedding_service.embed_text(query))
            self._query_embeddings[query] = task
        try:
            return await asyncio.shield(task)
        except EmbeddingFailure as e:
            # Without a query vector no collection can be searched
            raise IndexUnavailable(f"Query embedding failed: {e}") from e

    async def top_snippets(self, collection: str, query: str, k: int) -> list[SnippetResult]:
        """Return the k passages of a collection nearest to the query.

        Raises:
            CollectionNotFound: If the collection does not exist.
            IndexUnavailable: If the index backend is unusable or the query
                cannot be embedded.
        """
        if not await self.collection_exists(collection):
            raise CollectionNotFound(collection)

        query_embedding = await self._embed_query(query)
        response = await self._execute(
            "top_snippets",
            self.client.rpc(
                "match_passages",
                {
                    "query_embedding": query_embedding,
                    "match_count": k,
                    "collection": collection,
                },
            ),
        )

        results = [
            SnippetResult(
                content=row.get("content") or "",
                path=row["path"],
                score=row.get("score"),
            )
            for row in response.data or []
        ]
        logger.info(
            "collection_query_completed",
            collection=collection,
            k=k,
            results=len(results),
        )
        return results
