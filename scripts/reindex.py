#!/usr/bin/env python
"""Ingest a directory of documents into the vector store.

Usage:
    python scripts/reindex.py docs/              # Add/replace files from docs/
    python scripts/reindex.py docs/ --rebuild    # Clear the store first
    python scripts/reindex.py docs/ --verbose    # Show detailed progress
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa import config
from docqa.errors import DocQAError
from docqa.services import build_services
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_name: str):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📝 Chunks created:       {stats['chunksCreated']}")
        print(f"  🧮 Chunks in store:      {stats['totalChunks']}")
        print(f"  📁 Files in store:       {stats['totalFiles']}")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")

        if stats["chunksCreated"] > 0 and elapsed_seconds > 0:
            rate = stats["chunksCreated"] / elapsed_seconds
            print(f"  ⚡ Indexing rate:        {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Ingest a directory of documents for the RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py docs/              # Add or replace files
  python scripts/reindex.py docs/ --rebuild    # Clear the store first
  python scripts/reindex.py docs/ --verbose    # Show detailed progress
        """,
    )

    parser.add_argument("directory", type=Path, help="Directory of documents to ingest")

    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the vector store before ingesting",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()

    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\n📋 Configuration:")
        print(f"   Directory:        {args.directory}")
        print(f"   Vector backend:   {config.VECTOR_BACKEND}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk policy:     {config.CHUNK_POLICY}")

        services = build_services()

        if args.rebuild:
            print("\n⚠️  Rebuild mode: Will clear the existing vector store!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)
            await services.vector_store.clear()

        action = "Rebuilding" if args.rebuild else "Indexing"
        progress.start(f"{action} {args.directory}")

        stats = await services.ingest.ingest_directory(
            args.directory, progress_callback=progress.update
        )

        progress.finish(stats)

    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except DocQAError as e:
        print(f"\n❌ Error: {e.message}\n")
        logger.error("reindex_script_failed", error=e.message, error_kind=e.kind.value)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
