"""FAISS vector store for semantic search.

Handles:
- Exact inner-product search over L2-normalised vectors (== cosine similarity)
- Fragment persistence in a JSON sidecar next to the FAISS index
- Reloading when another process has rewritten the sidecar
- Index rebuilds after deletes
"""
import asyncio
from pathlib import Path
from typing import List, Optional, Sequence

import faiss
import numpy as np
from pydantic import ValidationError as PydanticValidationError
import structlog

from docqa import config
from docqa.errors import DimensionMismatchError, InternalError
from docqa.rag.models import Fragment, ScoredFragment, Snapshot, utc_now_iso
from docqa.rag.store import VectorStore, check_dimensions

logger = structlog.get_logger()


def _normalized(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    array = np.array(vectors, dtype=np.float32)
    faiss.normalize_L2(array)
    return array


class FAISSVectorStore(VectorStore):
    """FAISS-backed store; fragments live in a sidecar, vectors in the index."""

    def __init__(self, index_dir: Path = None):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Directory to store index and fragments (default: config.FAISS_INDEX_DIR)
        """
        self.index_dir = Path(index_dir or config.FAISS_INDEX_DIR)
        self.index_path = self.index_dir / "vectors.index"
        self.chunks_path = self.index_dir / "chunks.json"

        self.index: Optional[faiss.Index] = None
        self.chunks: List[Fragment] = []
        self._loaded_mtime: Optional[int] = None
        self._lock = asyncio.Lock()

        logger.info("faiss_store_initialized", index_dir=str(self.index_dir))

    @property
    def dimension(self) -> Optional[int]:
        return self.index.d if self.index is not None else None

    def _build_index(self, chunks: List[Fragment]) -> Optional[faiss.Index]:
        if not chunks:
            return None
        index = faiss.IndexFlatIP(len(chunks[0].embedding))
        index.add(_normalized([c.embedding for c in chunks]))
        return index

    def _sidecar_mtime(self) -> Optional[int]:
        try:
            return self.chunks_path.stat().st_mtime_ns
        except FileNotFoundError:
            return None

    def _load_sync(self) -> None:
        """Reload fragments and index if the sidecar changed on disk."""
        mtime = self._sidecar_mtime()
        if mtime is not None and mtime == self._loaded_mtime:
            return

        if mtime is None:
            self.chunks, self.index = [], None
            self._loaded_mtime = None
            return

        try:
            snapshot = Snapshot.model_validate_json(self.chunks_path.read_bytes())
        except (OSError, PydanticValidationError) as e:
            logger.error("faiss_sidecar_load_failed", error=str(e))
            raise InternalError(f"Failed to load FAISS fragments: {e}") from e

        index = None
        if self.index_path.exists():
            try:
                index = faiss.read_index(str(self.index_path))
            except RuntimeError as e:
                logger.warning("faiss_index_unreadable_rebuilding", error=str(e))

        # The index is derived data; rebuild it when it lags the sidecar
        if index is None or index.ntotal != len(snapshot.chunks):
            index = self._build_index(snapshot.chunks)

        self.chunks = snapshot.chunks
        self.index = index
        self._loaded_mtime = mtime

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=len(self.chunks),
        )

    def _save_sync(self, chunks: List[Fragment], index: Optional[faiss.Index]) -> None:
        try:
            self.index_dir.mkdir(parents=True, exist_ok=True)
            if index is not None:
                faiss.write_index(index, str(self.index_path))
            elif self.index_path.exists():
                self.index_path.unlink()

            snapshot = Snapshot(chunks=chunks, last_updated=utc_now_iso())
            tmp_path = self.chunks_path.with_suffix(".tmp")
            tmp_path.write_text(
                snapshot.model_dump_json(by_alias=True), encoding="utf-8"
            )
            tmp_path.replace(self.chunks_path)
        except (OSError, RuntimeError) as e:
            logger.error("faiss_index_save_failed", error=str(e))
            raise InternalError(f"Failed to save FAISS index: {e}") from e

        self.chunks = chunks
        self.index = index
        self._loaded_mtime = self._sidecar_mtime()

        logger.info(
            "faiss_index_saved",
            index_path=str(self.index_path),
            vector_count=len(chunks),
        )

    async def add_chunks(self, fragments: Sequence[Fragment]) -> None:
        if not fragments:
            return

        async with self._lock:
            await asyncio.to_thread(self._load_sync)
            check_dimensions(fragments, self.dimension)

            chunks = self.chunks + list(fragments)
            index = self.index
            if index is None:
                index = faiss.IndexFlatIP(len(fragments[0].embedding))
            index.add(_normalized([f.embedding for f in fragments]))

            try:
                await asyncio.to_thread(self._save_sync, chunks, index)
            except InternalError:
                # The in-memory index already holds the new vectors
                self._loaded_mtime = None
                self.index = None
                raise

        logger.info("vectors_added", count=len(fragments), total_vectors=len(chunks))

    async def get_all_chunks(self) -> List[Fragment]:
        async with self._lock:
            await asyncio.to_thread(self._load_sync)
            return list(self.chunks)

    async def delete_chunks_by_file_name(self, file_name: str) -> int:
        async with self._lock:
            await asyncio.to_thread(self._load_sync)
            remaining = [c for c in self.chunks if c.metadata.file_name != file_name]
            removed = len(self.chunks) - len(remaining)
            if removed:
                await asyncio.to_thread(
                    self._save_sync, remaining, self._build_index(remaining)
                )

        logger.info("chunks_deleted", file_name=file_name, removed=removed)
        return removed

    async def replace_chunks(
        self, file_names: Sequence[str], fragments: Sequence[Fragment]
    ) -> int:
        names = set(file_names)

        async with self._lock:
            await asyncio.to_thread(self._load_sync)
            remaining = [c for c in self.chunks if c.metadata.file_name not in names]
            removed = len(self.chunks) - len(remaining)
            existing_dim = len(remaining[0].embedding) if remaining else None
            check_dimensions(fragments, existing_dim)

            if removed or fragments:
                chunks = remaining + list(fragments)
                await asyncio.to_thread(
                    self._save_sync, chunks, self._build_index(chunks)
                )

        logger.info(
            "chunks_replaced",
            files=sorted(names),
            removed=removed,
            added=len(fragments),
        )
        return removed

    async def clear(self) -> None:
        async with self._lock:
            await asyncio.to_thread(self._save_sync, [], None)
        logger.warning("vector_store_cleared", index_dir=str(self.index_dir))

    async def find_most_similar(
        self, query_embedding: Sequence[float], top_k: int
    ) -> List[ScoredFragment]:
        async with self._lock:
            await asyncio.to_thread(self._load_sync)
            index, chunks = self.index, self.chunks

        if index is None or top_k <= 0:
            return []

        if len(query_embedding) != index.d:
            raise DimensionMismatchError(index.d, len(query_embedding))

        # Ensure we don't request more results than we have
        top_k = min(top_k, index.ntotal)
        scores, indices = index.search(_normalized([query_embedding]), top_k)

        hits = [
            (position, float(score))
            for position, score in zip(indices[0].tolist(), scores[0].tolist())
            if position >= 0
        ]
        # Equal scores keep insertion order
        hits.sort(key=lambda hit: (-hit[1], hit[0]))

        logger.info("vector_search_completed", top_k=top_k, results_found=len(hits))

        return [
            ScoredFragment(fragment=chunks[position], similarity=score)
            for position, score in hits
        ]
