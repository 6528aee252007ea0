"""Unit tests for adaptive-k retrieval."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ingestion.index_service import IndexService
from src.ingestion.schemas import SnippetResult
from src.retrieval.config import RetrievalConfig
from src.retrieval.orchestrator import (
    CHAT_BUDGET,
    COMPOSE_BUDGET,
    RetrievalOrchestrator,
    adaptive_k,
    rank_results,
)
from src.utils.errors import CollectionNotFound, EmbeddingFailure, IndexUnavailable


def snippet(
    score: float | None, path: str = "v/chunk_0_0.0s.txt", content: str = ""
) -> SnippetResult:
    return SnippetResult(content=content or f"score {score}", path=path, score=score)


@pytest.mark.unit
class TestAdaptiveK:
    """Test suite for the per-video k."""

    @pytest.mark.parametrize(
        "video_count,expected",
        [(1, 10), (2, 5), (3, 5), (4, 4), (5, 3), (10, 3), (100, 3)],
    )
    def test_chat_budget(self, video_count: int, expected: int) -> None:
        """Test k shrinks with scope size and stays within [3, 5]."""
        assert adaptive_k(video_count) == expected

    @pytest.mark.parametrize(
        "video_count,expected",
        [(1, 15), (2, 10), (3, 9), (4, 7), (5, 5), (20, 5)],
    )
    def test_compose_budget(self, video_count: int, expected: int) -> None:
        """Test the larger compose budget."""
        assert adaptive_k(video_count, COMPOSE_BUDGET) == expected

    def test_empty_scope(self) -> None:
        """Test an empty scope is rejected."""
        with pytest.raises(ValueError, match="At least one video"):
            adaptive_k(0)


@pytest.mark.unit
class TestRankResults:
    """Test suite for global ranking."""

    def test_best_passages_win(self) -> None:
        """Test results are sorted by score and truncated."""
        ranked = rank_results([snippet(0.9), snippet(0.4), snippet(0.95), snippet(0.2)], 3)
        assert [r.score for r in ranked] == [0.95, 0.9, 0.4]

    def test_ties_keep_pooled_order(self) -> None:
        """Test equal scores keep their input order."""
        first = snippet(0.5, content="first")
        second = snippet(0.5, content="second")
        ranked = rank_results([first, snippet(0.9), second], 10)
        assert [r.content for r in ranked] == ["score 0.9", "first", "second"]

    def test_unscored_results_dropped(self) -> None:
        """Test a missing score excludes a result."""
        ranked = rank_results([snippet(None), snippet(0.1)], 10)
        assert [r.score for r in ranked] == [0.1]


@pytest.mark.unit
class TestRetrievalOrchestrator:
    """Test suite for RetrievalOrchestrator class."""

    @pytest.fixture
    def index_service(self) -> MagicMock:
        """Create mock index service that returns k scored passages per collection."""

        async def top_snippets(collection: str, query: str, k: int) -> list[SnippetResult]:
            video_id = collection.removeprefix("video-")
            base = {"a": 0.9, "b": 0.8, "c": 0.7, "d": 0.6}.get(video_id, 0.5)
            return [
                snippet(
                    round(base - i * 0.01, 2),
                    path=f"{video_id}/chunk_{i * 10}_{i * 20.0:.1f}s.txt",
                )
                for i in range(k)
            ]

        service = MagicMock()
        service.top_snippets = AsyncMock(side_effect=top_snippets)
        return service

    @pytest.fixture
    def orchestrator(self, index_service: MagicMock) -> RetrievalOrchestrator:
        """Create orchestrator with a short per-collection timeout."""
        config = RetrievalConfig(query_timeout_seconds=0.05, max_context_chars=24000)
        return RetrievalOrchestrator(index_service, config)

    @pytest.mark.asyncio
    async def test_single_video(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test one video is queried for 10 passages."""
        result = await orchestrator.retrieve("habits", ["a"])

        index_service.top_snippets.assert_called_once_with("video-a", "habits", 10)
        assert result.k == 10
        assert len(result.passages) == 10
        assert result.queried == ["a"]

    @pytest.mark.asyncio
    async def test_fan_out_keeps_global_top_n(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test four videos are queried with k=4 and the best 10 of 16 are kept."""
        result = await orchestrator.retrieve("habits", ["a", "b", "c", "d"])

        assert result.k == 4
        assert index_service.top_snippets.call_count == 4
        for call_args in index_service.top_snippets.call_args_list:
            assert call_args.args[2] == 4

        assert len(result.passages) == 10
        scores = [p.score for p in result.passages]
        assert scores == sorted(scores, reverse=True)
        assert {p.path.split("/")[0] for p in result.passages} == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_compose_budget(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test compose requests use the larger budget."""
        result = await orchestrator.retrieve("summary", ["a"], COMPOSE_BUDGET)

        index_service.top_snippets.assert_called_once_with("video-a", "summary", 15)
        assert len(result.passages) == 15

    @pytest.mark.asyncio
    async def test_missing_collection_tolerated(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test a video without a collection contributes nothing."""
        side_effect = index_service.top_snippets.side_effect

        async def top_snippets(collection: str, query: str, k: int) -> list[SnippetResult]:
            if collection == "video-b":
                raise CollectionNotFound(collection)
            return await side_effect(collection, query, k)

        index_service.top_snippets.side_effect = top_snippets

        result = await orchestrator.retrieve("habits", ["a", "b"])

        assert result.queried == ["a"]
        assert result.missing == ["b"]
        assert len(result.passages) == 5
        assert all(p.path.startswith("a/") for p in result.passages)

    @pytest.mark.asyncio
    async def test_timeout_tolerated(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test a slow collection is dropped after the timeout."""
        side_effect = index_service.top_snippets.side_effect

        async def top_snippets(collection: str, query: str, k: int) -> list[SnippetResult]:
            if collection == "video-a":
                await asyncio.sleep(1)
            return await side_effect(collection, query, k)

        index_service.top_snippets.side_effect = top_snippets

        result = await orchestrator.retrieve("habits", ["a", "b"])

        assert result.failed == ["a"]
        assert result.queried == ["b"]
        assert all(p.path.startswith("b/") for p in result.passages)

    @pytest.mark.asyncio
    async def test_other_errors_tolerated(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test an unexpected error on every collection yields an empty pool."""
        index_service.top_snippets.side_effect = RuntimeError("boom")

        result = await orchestrator.retrieve("habits", ["a", "b"])

        assert result.passages == []
        assert result.failed == ["a", "b"]

    @pytest.mark.asyncio
    async def test_index_unavailable_propagates(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test an unusable backend fails the whole request."""
        index_service.top_snippets.side_effect = IndexUnavailable("Index backend unavailable")

        with pytest.raises(IndexUnavailable):
            await orchestrator.retrieve("habits", ["a", "b"])

    @pytest.mark.asyncio
    async def test_empty_scope(self, orchestrator: RetrievalOrchestrator) -> None:
        """Test retrieving with no scoped videos."""
        with pytest.raises(ValueError):
            await orchestrator.retrieve("habits", [])

    def test_budgets(self) -> None:
        """Test the chat and compose presets."""
        assert CHAT_BUDGET.top_n == 10
        assert COMPOSE_BUDGET.top_n == 15

    @pytest.mark.asyncio
    async def test_repeated_ids_count_once(
        self, orchestrator: RetrievalOrchestrator, index_service: MagicMock
    ) -> None:
        """Test a repeated video id is queried once and counted once for k."""
        result = await orchestrator.retrieve("habits", ["a", "a"])

        index_service.top_snippets.assert_called_once_with("video-a", "habits", 10)
        assert result.k == 10
        assert result.queried == ["a"]
        paths = [p.path for p in result.passages]
        assert len(paths) == len(set(paths))

    @pytest.mark.asyncio
    async def test_repeated_ids_keep_first_occurrence_order(
        self, orchestrator: RetrievalOrchestrator
    ) -> None:
        """Test scope order follows the first occurrence of each id."""
        result = await orchestrator.retrieve("habits", ["b", "a", "b"])

        assert result.k == 5
        assert result.queried == ["b", "a"]


@pytest.mark.unit
class TestRetrievalWithIndexService:
    """Test retrieval against a real IndexService with mocked backends."""

    @pytest.fixture
    def embedding_service(self) -> MagicMock:
        """Create mock embedding service whose provider rejects the API key."""
        service = MagicMock()
        service.embed_text = AsyncMock(side_effect=EmbeddingFailure("401 invalid api key"))
        return service

    @pytest.fixture
    def index_service(self, embedding_service: MagicMock) -> IndexService:
        """Create index service whose collections all exist."""
        service = IndexService(MagicMock(), embedding_service)
        service.collection_exists = AsyncMock(return_value=True)
        return service

    @pytest.mark.asyncio
    async def test_query_embedding_failure_propagates(
        self, index_service: IndexService, embedding_service: MagicMock
    ) -> None:
        """Test a failed query embedding aborts retrieval instead of emptying the pool."""
        orchestrator = RetrievalOrchestrator(
            index_service, RetrievalConfig(query_timeout_seconds=1, max_context_chars=24000)
        )

        with pytest.raises(IndexUnavailable, match="401 invalid api key"):
            await orchestrator.retrieve("habits", ["a", "b", "c"])

        embedding_service.embed_text.assert_called_once_with("habits")
