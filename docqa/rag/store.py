"""Vector store interface, similarity helpers and backend selection.

All backends answer similarity queries with the same convention: cosine
similarity in [-1, 1], higher is more similar, sorted best first with ties
kept in insertion order.
"""
from abc import ABC, abstractmethod
from typing import List, Sequence
import numpy as np
import structlog

from docqa import config
from docqa.errors import DimensionMismatchError
from docqa.rag.models import Fragment, ScoredFragment, StoreStats

logger = structlog.get_logger()


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def rank_by_similarity(
    query_embedding: Sequence[float], fragments: Sequence[Fragment], top_k: int
) -> List[ScoredFragment]:
    """Brute-force top-k ranking of fragments against a query vector."""
    if top_k <= 0 or not fragments:
        return []

    scored = [
        ScoredFragment(
            fragment=fragment,
            similarity=cosine_similarity(query_embedding, fragment.embedding),
        )
        for fragment in fragments
    ]
    # sorted() is stable, so equal scores keep insertion order
    scored = sorted(scored, key=lambda s: s.similarity, reverse=True)
    return scored[:top_k]


class VectorStore(ABC):
    """Durable set of fragments that answers nearest-neighbour queries."""

    @abstractmethod
    async def add_chunks(self, fragments: Sequence[Fragment]) -> None:
        """Persist fragments; returns only after they are durable."""

    @abstractmethod
    async def get_all_chunks(self) -> List[Fragment]:
        """All fragments in insertion order."""

    async def get_chunks_by_file_name(self, file_name: str) -> List[Fragment]:
        return [
            f for f in await self.get_all_chunks() if f.metadata.file_name == file_name
        ]

    @abstractmethod
    async def delete_chunks_by_file_name(self, file_name: str) -> int:
        """Delete every fragment of a file; returns how many were removed."""

    @abstractmethod
    async def replace_chunks(
        self, file_names: Sequence[str], fragments: Sequence[Fragment]
    ) -> int:
        """Swap the fragments of the named files for new ones in one write.

        Either the old fragments are gone and the new ones stored, or the
        store is left unchanged. Returns how many old fragments were removed.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Remove all fragments."""

    async def get_stats(self) -> StoreStats:
        fragments = await self.get_all_chunks()
        return StoreStats(
            total_chunks=len(fragments),
            unique_files=len({f.metadata.file_name for f in fragments}),
        )

    async def list_files(self) -> List[dict]:
        """Per-file summary in first-seen order."""
        files = {}
        for fragment in await self.get_all_chunks():
            meta = fragment.metadata
            entry = files.setdefault(
                meta.file_name,
                {
                    "fileName": meta.file_name,
                    "fileType": meta.file_type,
                    "uploadDate": meta.upload_date,
                    "chunks": 0,
                },
            )
            entry["chunks"] += 1
        return list(files.values())

    @abstractmethod
    async def find_most_similar(
        self, query_embedding: Sequence[float], top_k: int
    ) -> List[ScoredFragment]:
        """Up to top_k fragments, most similar first."""


def check_dimensions(fragments: Sequence[Fragment], expected: int = None) -> None:
    """Ensure every fragment shares one embedding length.

    Args:
        fragments: Fragments about to be stored
        expected: Dimension already present in the store, if any

    Raises:
        DimensionMismatchError: On the first fragment that differs
    """
    for fragment in fragments:
        if expected is None:
            expected = len(fragment.embedding)
        elif len(fragment.embedding) != expected:
            raise DimensionMismatchError(expected, len(fragment.embedding))


def create_vector_store(backend: str = None) -> VectorStore:
    """Build the configured vector store backend.

    Args:
        backend: "json", "faiss" or "chroma" (default from config)
    """
    backend = backend or config.VECTOR_BACKEND

    logger.info("vector_store_backend_selected", backend=backend)

    if backend == "json":
        from docqa.rag.store_json import JSONVectorStore

        return JSONVectorStore()
    if backend == "faiss":
        from docqa.rag.store_faiss import FAISSVectorStore

        return FAISSVectorStore()
    if backend == "chroma":
        from docqa.rag.store_chroma import ChromaVectorStore

        return ChromaVectorStore()

    raise ValueError(f"Unknown vector store backend: {backend}")
