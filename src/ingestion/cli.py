"""Command-line interface for ingesting a single video outside the workflow runner."""

import argparse
import asyncio
import sys

from src.utils.clients import get_supabase_client
from src.utils.errors import KnowledgeBaseError
from src.utils.logging import get_logger

from .config import get_config
from .pipeline import build_coordinator

logger = get_logger(__name__)


async def main() -> int:
    """CLI entry point for one ingestion attempt.

    Runs the same coordinator the workflow runner invokes. A failed attempt
    leaves the video FAILED with its failure reason, exactly as a runner-driven
    attempt would.

    Returns:
        Process exit code (0 on success, 1 on ingestion failure).
    """
    parser = argparse.ArgumentParser(
        description="Ingest a video transcript into its knowledge base collection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ingest a queued video row
  python -m src.ingestion.cli --video-id 9f1c2d3e --source-id dQw4w9WgXcQ

  # Use larger passages
  python -m src.ingestion.cli --video-id 9f1c2d3e --source-id dQw4w9WgXcQ --group-size 15
        """,
    )
    parser.add_argument("--video-id", required=True, help="Internal video row id")
    parser.add_argument("--source-id", required=True, help="YouTube video id")
    parser.add_argument(
        "--group-size",
        type=int,
        help="Override the number of transcript segments per passage",
    )
    args = parser.parse_args()

    config = get_config()
    if args.group_size:
        config.chunk_group_size = args.group_size

    logger.info(
        "cli_started",
        video_id=args.video_id,
        source_id=args.source_id,
        group_size=config.chunk_group_size,
    )

    print("\n" + "=" * 60)
    print("Video Ingestion")
    print("=" * 60)
    print(f"Video ID: {args.video_id}")
    print(f"Source ID: {args.source_id}")
    print(f"Embedding model: {config.embedding_model}")
    print(f"Segments per passage: {config.chunk_group_size}")
    print("=" * 60 + "\n")

    coordinator = build_coordinator(config, get_supabase_client(config))

    try:
        result = await coordinator.ingest(args.video_id, args.source_id)
    except KnowledgeBaseError as e:
        logger.exception("cli_ingestion_failed", error_type=type(e).__name__)
        print(f"\n❌ Ingestion failed: {e}")
        return 1

    print("\n" + "=" * 60)
    print("Ingestion Results")
    print("=" * 60)
    if result.skipped:
        print("Video is already READY; nothing to do.")
    else:
        print(f"Title: {result.title}")
        print(f"Segments: {result.total_segments}")
        print(f"Passages: {result.total_passages}")
        print(f"Inserted: {result.passages_inserted}")
        print(f"Already indexed: {result.passages_skipped}")
        print(f"Collection: {result.collection_name}")
    print("=" * 60 + "\n")

    logger.info("cli_completed", video_id=args.video_id, status=result.status.value)
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
