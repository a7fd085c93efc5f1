"""Brute-force vector store backed by a JSON snapshot.

The snapshot (`{"chunks": [...], "lastUpdated": ...}`) is reloaded before
every read, since another process may have rewritten it, and rewritten
wholesale on every write. Writes from this process go through one lock, so
concurrent read-modify-write cycles cannot drop each other's fragments.
"""
import asyncio
import os
import tempfile
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError as PydanticValidationError
import structlog

from docqa import config
from docqa.errors import InternalError
from docqa.rag.models import Fragment, ScoredFragment, Snapshot, utc_now_iso
from docqa.rag.store import VectorStore, check_dimensions, rank_by_similarity

logger = structlog.get_logger()


class JSONVectorStore(VectorStore):
    """In-process scanner over a whole-file JSON snapshot."""

    def __init__(self, db_path: Path = None):
        """Initialize the JSON vector store.

        Args:
            db_path: Snapshot file location (default: config.VECTOR_DB_PATH)
        """
        self.db_path = Path(db_path or config.VECTOR_DB_PATH)
        self._write_lock = asyncio.Lock()

        logger.info("json_store_initialized", db_path=str(self.db_path))

    def _read_snapshot(self) -> Snapshot:
        if not self.db_path.exists():
            return Snapshot()
        try:
            return Snapshot.model_validate_json(self.db_path.read_bytes())
        except (OSError, PydanticValidationError) as e:
            logger.error("snapshot_load_failed", path=str(self.db_path), error=str(e))
            raise InternalError(f"Failed to load vector snapshot: {e}") from e

    def _write_snapshot(self, snapshot: Snapshot) -> None:
        payload = snapshot.model_dump_json(by_alias=True, indent=2)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Write next to the target and swap in, so readers never see a
            # half-written file
            fd, tmp_path = tempfile.mkstemp(
                dir=self.db_path.parent, prefix=".vector-db-", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, self.db_path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
        except OSError as e:
            logger.error("snapshot_save_failed", path=str(self.db_path), error=str(e))
            raise InternalError(f"Failed to save vector snapshot: {e}") from e

        logger.debug(
            "snapshot_saved", path=str(self.db_path), chunk_count=len(snapshot.chunks)
        )

    async def _load(self) -> Snapshot:
        return await asyncio.to_thread(self._read_snapshot)

    async def _save(self, chunks: List[Fragment]) -> None:
        snapshot = Snapshot(chunks=chunks, last_updated=utc_now_iso())
        await asyncio.to_thread(self._write_snapshot, snapshot)

    async def add_chunks(self, fragments: Sequence[Fragment]) -> None:
        if not fragments:
            return

        async with self._write_lock:
            snapshot = await self._load()
            existing_dim = (
                len(snapshot.chunks[0].embedding) if snapshot.chunks else None
            )
            check_dimensions(fragments, existing_dim)

            await self._save(snapshot.chunks + list(fragments))

        logger.info(
            "chunks_added",
            count=len(fragments),
            total_chunks=len(snapshot.chunks) + len(fragments),
        )

    async def get_all_chunks(self) -> List[Fragment]:
        snapshot = await self._load()
        return snapshot.chunks

    async def delete_chunks_by_file_name(self, file_name: str) -> int:
        async with self._write_lock:
            snapshot = await self._load()
            remaining = [
                f for f in snapshot.chunks if f.metadata.file_name != file_name
            ]
            removed = len(snapshot.chunks) - len(remaining)
            if removed:
                await self._save(remaining)

        logger.info("chunks_deleted", file_name=file_name, removed=removed)
        return removed

    async def replace_chunks(
        self, file_names: Sequence[str], fragments: Sequence[Fragment]
    ) -> int:
        names = set(file_names)

        async with self._write_lock:
            snapshot = await self._load()
            remaining = [
                f for f in snapshot.chunks if f.metadata.file_name not in names
            ]
            removed = len(snapshot.chunks) - len(remaining)
            existing_dim = len(remaining[0].embedding) if remaining else None
            check_dimensions(fragments, existing_dim)

            if removed or fragments:
                await self._save(remaining + list(fragments))

        logger.info(
            "chunks_replaced",
            files=sorted(names),
            removed=removed,
            added=len(fragments),
        )
        return removed

    async def clear(self) -> None:
        async with self._write_lock:
            await self._save([])
        logger.warning("vector_store_cleared", path=str(self.db_path))

    async def find_most_similar(
        self, query_embedding: Sequence[float], top_k: int
    ) -> List[ScoredFragment]:
        fragments = await self.get_all_chunks()
        results = rank_by_similarity(query_embedding, fragments, top_k)

        logger.info(
            "vector_search_completed",
            top_k=top_k,
            searched=len(fragments),
            results_found=len(results),
        )

        return results
