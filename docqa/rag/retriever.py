"""Retriever for semantic search over uploaded documents.

Handles:
- Query embedding generation
- Nearest-neighbour lookup in the vector store
- Context formatting for the prompt

Retrieval failures degrade to "no relevant context": a question answered
from an empty context is still meaningful, so they never fail the request.
"""
from typing import List, Sequence
import structlog

from docqa import config
from docqa.errors import DocQAError
from docqa.llm_client import EmbeddingProvider
from docqa.rag.models import ScoredFragment
from docqa.rag.store import VectorStore

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            vector_store: Store to search
            embedder: Embedding provider for the question
            top_k: Number of fragments to retrieve (default: config.MAX_CONTEXT_CHUNKS)
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.top_k = top_k or config.MAX_CONTEXT_CHUNKS

        logger.info("retriever_initialized", top_k=self.top_k)

    async def retrieve(self, query: str, top_k: int = None) -> List[ScoredFragment]:
        """Retrieve the fragments most similar to a query.

        Args:
            query: Question text
            top_k: Number of results to return (overrides default)

        Returns:
            Fragments sorted best first; empty if nothing could be retrieved
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return []

        top_k = top_k or self.top_k

        logger.info("retrieval_started", query_length=len(query), top_k=top_k)

        try:
            query_embedding = await self.embedder.embed(query)
            results = await self.vector_store.find_most_similar(query_embedding, top_k)
        except DocQAError as e:
            logger.error(
                "retrieval_failed",
                error=e.message,
                error_type=type(e).__name__,
                error_kind=e.kind.value,
                query_preview=query[:100],
            )
            return []

        logger.info(
            "retrieval_completed",
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
        )

        return results


def build_context(results: Sequence[ScoredFragment]) -> str:
    """Render retrieved fragments with 1-based source numbers and file names."""
    return "\n\n".join(
        f"Source {i} ({result.fragment.metadata.file_name}):\n{result.fragment.text}"
        for i, result in enumerate(results, 1)
    )
