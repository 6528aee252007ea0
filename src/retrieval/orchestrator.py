"""Retrieval orchestrator: adaptive-k fan-out over per-video collections.

A request scoped to n videos queries each video's collection concurrently,
pools the results and keeps the globally best passages. The per-video k
shrinks as n grows so the candidate pool stays roughly constant.
"""

import asyncio
import math
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, Field

from src.ingestion.chunking_service import collection_name_for
from src.ingestion.index_service import IndexService
from src.ingestion.schemas import SnippetResult
from src.utils.errors import CollectionNotFound, IndexUnavailable
from src.utils.logging import get_logger

from .config import RetrievalConfig, get_config

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetrievalBudget:
    """Per-video and global passage limits for one kind of request.

    Attributes:
        single_video_k: Passages requested when only one video is in scope.
        target_pool: Total candidates aimed for across several videos.
        min_k: Lower clamp for the per-video k when n > 1.
        max_k: Upper clamp for the per-video k when n > 1.
        top_n: Passages kept after global ranking.
    """

    single_video_k: int
    target_pool: int
    min_k: int
    max_k: int
    top_n: int


CHAT_BUDGET = RetrievalBudget(single_video_k=10, target_pool=15, min_k=3, max_k=5, top_n=10)
COMPOSE_BUDGET = RetrievalBudget(single_video_k=15, target_pool=25, min_k=5, max_k=10, top_n=15)


class RetrievalResult(BaseModel):
    """Ranked passages plus a per-collection account of the fan-out."""

    passages: list[SnippetResult] = Field(default_factory=list)
    k: int
    queried: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class _Outcome(str, Enum):
    QUERIED = "queried"
    MISSING = "missing"
    FAILED = "failed"


def adaptive_k(video_count: int, budget: RetrievalBudget = CHAT_BUDGET) -> int:
    """Passages to request from each collection for a scope of `video_count` videos.

    Args:
        video_count: Number of scoped videos (n >= 1).
        budget: Budget preset.

    Returns:
        `single_video_k` for one video, else ceil(target_pool / n) clamped to
        [min_k, max_k].

    Raises:
        ValueError: If video_count < 1.

    Examples:
        >>> adaptive_k(1)
        10
        >>> adaptive_k(4)
        4
    """
    if video_count < 1:
        raise ValueError("At least one video must be in scope")

    if video_count == 1:
        return budget.single_video_k

    return max(budget.min_k, min(budget.max_k, math.ceil(budget.target_pool / video_count)))


def rank_results(results: list[SnippetResult], top_n: int) -> list[SnippetResult]:
    """Drop unscored results, sort by score descending, keep the first top_n.

    The sort is stable, so equal scores keep their pooled order (scoped-video
    order, then provider order).
    """
    scored = [r for r in results if r.score is not None]
    return sorted(scored, key=lambda r: r.score, reverse=True)[:top_n]


class RetrievalOrchestrator:
    """Queries the collections of the scoped videos and ranks the pooled passages."""

    def __init__(self, index_service: IndexService, config: RetrievalConfig | None = None):
        """Initialize orchestrator.

        Args:
            index_service: Index client scoped to the current request.
            config: Configuration object. If None, loads from environment.
        """
        self.index_service = index_service
        self.config = config or get_config()

    async def retrieve(
        self,
        query: str,
        video_ids: list[str],
        budget: RetrievalBudget = CHAT_BUDGET,
    ) -> RetrievalResult:
        """Retrieve the globally top-ranked passages for a query.

        A missing collection, a timed-out query and any other per-collection
        error each contribute zero results. An empty pool is a valid result.

        Args:
            query: Retrieval query text.
            video_ids: Scoped video ids, in scope order. Repeats are ignored.
            budget: Budget preset (CHAT_BUDGET or COMPOSE_BUDGET).

        Returns:
            RetrievalResult with at most budget.top_n passages.

        Raises:
            ValueError: If no video is in scope.
            IndexUnavailable: If the index backend as a whole is unusable.
        """
        # Scope is an ordered set: first occurrence wins
        video_ids = list(dict.fromkeys(video_ids))
        k = adaptive_k(len(video_ids), budget)
        logger.info("retrieval_started", video_count=len(video_ids), k=k, top_n=budget.top_n)

        tasks = [
            asyncio.create_task(self._query_collection(video_id, query, k))
            for video_id in video_ids
        ]
        try:
            outcomes = await asyncio.gather(*tasks)
        except IndexUnavailable:
            for task in tasks:
                task.cancel()
            logger.error("retrieval_aborted", reason="index_unavailable")
            raise

        result = RetrievalResult(k=k)
        pooled: list[SnippetResult] = []
        for video_id, (outcome, snippets) in zip(video_ids, outcomes, strict=True):
            if outcome == _Outcome.QUERIED:
                result.queried.append(video_id)
            elif outcome == _Outcome.MISSING:
                result.missing.append(video_id)
            else:
                result.failed.append(video_id)
            pooled.extend(snippets)

        result.passages = rank_results(pooled, budget.top_n)

        logger.info(
            "retrieval_completed",
            candidates=len(pooled),
            passages=len(result.passages),
            top_scores=[round(p.score, 3) for p in result.passages[:3]],
            missing=len(result.missing),
            failed=len(result.failed),
        )
        return result

    async def _query_collection(
        self, video_id: str, query: str, k: int
    ) -> tuple[_Outcome, list[SnippetResult]]:
        collection = collection_name_for(video_id)
        try:
            snippets = await asyncio.wait_for(
                self.index_service.top_snippets(collection, query, k),
                timeout=self.config.query_timeout_seconds,
            )
        except CollectionNotFound:
            logger.info("collection_not_found", collection=collection)
            return _Outcome.MISSING, []
        except IndexUnavailable:
            raise
        except TimeoutError:
            logger.warning(
                "collection_query_timeout",
                collection=collection,
                timeout_seconds=self.config.query_timeout_seconds,
            )
            return _Outcome.FAILED, []
        except Exception as e:
            logger.exception(
                "collection_query_failed",
                collection=collection,
                error_type=type(e).__name__,
            )
            return _Outcome.FAILED, []

        return _Outcome.QUERIED, snippets
