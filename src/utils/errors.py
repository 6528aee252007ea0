"""Error taxonomy shared by ingestion, retrieval and generation.

Ingestion errors are captured once by the ingestion coordinator, written into
the video's failure_reason and re-raised for the workflow runner. Index errors
are raised by the index client; the "already exists" pair is tolerated by the
coordinator and CollectionNotFound is tolerated by the retrieval orchestrator.
"""


class KnowledgeBaseError(Exception):
    """Base class for all knowledge base errors."""


# ==============================================================================
# Ingestion
# ==============================================================================


class IngestionError(KnowledgeBaseError):
    """Base class for failures that move a video to FAILED."""


class TranscriptUnavailable(IngestionError):
    """The acquisition adapter reported that the video has no transcript."""


class AcquisitionTimeout(IngestionError):
    """A transcript acquisition sub-step exceeded its time ceiling."""


class EmptyTranscript(IngestionError):
    """The transcript contained zero segments."""


class ChunkingProducedNoResults(IngestionError):
    """Chunking a non-empty transcript produced zero passages."""


class ChunkCoverageMismatch(IngestionError):
    """Joined passage text does not reconstruct the transcript text."""


class EmbeddingFailure(IngestionError):
    """The embedding provider failed to vectorize passage text."""


class StatusUpdateFailure(IngestionError):
    """Writing the video row failed or matched no row."""


class InvalidStatusTransition(IngestionError):
    """A status change outside the allowed transition set was requested."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid status transition: {current} -> {target}")


# ==============================================================================
# Index
# ==============================================================================


class IndexClientError(KnowledgeBaseError):
    """Base class for index client errors."""


class CollectionAlreadyExists(IndexClientError):
    """Collection creation hit an existing collection. Tolerated."""


class DocumentAlreadyExists(IndexClientError):
    """Document insertion hit an existing path key. Tolerated."""


class CollectionNotFound(IndexClientError):
    """The queried collection does not exist (video not yet indexed)."""

    def __init__(self, collection_name: str):
        self.collection_name = collection_name
        super().__init__(f"Collection not found: {collection_name}")


class IndexUnavailable(IndexClientError):
    """The index backend itself is unreachable or rejected our credentials."""


# ==============================================================================
# Requests and generation
# ==============================================================================


class VideoNotFound(KnowledgeBaseError):
    """No video row matched the requested id (and profile)."""


class InvalidVideoUrl(KnowledgeBaseError):
    """The submitted URL is neither a video nor a channel URL."""


class GenerationFailure(KnowledgeBaseError):
    """The generation model call failed before completing the stream."""


class UnsupportedExportFormat(KnowledgeBaseError):
    """The requested conversation export format is not supported."""
