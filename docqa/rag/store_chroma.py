"""ChromaDB-backed vector store.

The nearest-neighbour search runs on a Chroma server. The collection uses
cosine space, and the adapter turns Chroma's cosine distance into the
similarity score every other backend reports (similarity = 1 - distance),
so callers never see raw distances.
"""
import asyncio
import time
from typing import Any, Dict, List, Sequence

import chromadb
import structlog

from docqa import config
from docqa.errors import DimensionMismatchError, InternalError
from docqa.rag.models import Fragment, FragmentMetadata, ScoredFragment
from docqa.rag.store import VectorStore, check_dimensions

logger = structlog.get_logger()

SEQUENCE_KEY = "insertSeq"


def distance_to_similarity(distance: float) -> float:
    """Cosine distance -> cosine similarity."""
    return 1.0 - float(distance)


class ChromaVectorStore(VectorStore):
    """Delegates storage and search to a Chroma collection."""

    def __init__(self, client=None, collection_name: str = None):
        """Initialize the Chroma vector store.

        Args:
            client: Chroma client (default: HttpClient on config.CHROMA_HOST/PORT)
            collection_name: Collection to use (default from config)
        """
        self.client = client or chromadb.HttpClient(
            host=config.CHROMA_HOST, port=config.CHROMA_PORT
        )
        self.collection_name = collection_name or config.CHROMA_COLLECTION
        self.collection = self._get_collection()

        logger.info("chroma_store_initialized", collection=self.collection_name)

    def _get_collection(self):
        try:
            return self.client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=None,
            )
        except Exception as e:
            logger.error("chroma_collection_failed", error=str(e))
            raise InternalError(f"Failed to get Chroma collection: {e}") from e

    async def _call(self, operation: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            logger.error(
                "chroma_operation_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InternalError(f"Chroma {operation} failed: {e}") from e

    @staticmethod
    def _to_fragment(
        chunk_id: str, text: str, embedding: Any, metadata: Dict[str, Any]
    ) -> Fragment:
        return Fragment(
            id=chunk_id,
            text=text or "",
            embedding=[float(x) for x in embedding] if embedding is not None else [],
            metadata=FragmentMetadata(
                file_name=metadata["fileName"],
                chunk_index=metadata["chunkIndex"],
                upload_date=metadata["uploadDate"],
                file_type=metadata["fileType"],
            ),
        )

    async def _existing_dimension(self, where: Dict[str, Any] = None):
        kwargs = {"limit": 1, "include": ["embeddings"]}
        if where:
            kwargs["where"] = where
        peek = await self._call("peek", self.collection.get, **kwargs)
        embeddings = peek.get("embeddings")
        if embeddings is None or len(embeddings) == 0:
            return None
        return len(embeddings[0])

    def _metadatas(self, fragments: Sequence[Fragment]) -> List[Dict[str, Any]]:
        base = time.time_ns()
        metadatas = []
        for offset, fragment in enumerate(fragments):
            metadata = fragment.metadata.model_dump(by_alias=True)
            metadata[SEQUENCE_KEY] = base + offset
            metadatas.append(metadata)

        return metadatas

    async def _add(self, fragments: Sequence[Fragment]) -> None:
        await self._call(
            "add",
            self.collection.add,
            ids=[f.id for f in fragments],
            embeddings=[f.embedding for f in fragments],
            documents=[f.text for f in fragments],
            metadatas=self._metadatas(fragments),
        )

    async def add_chunks(self, fragments: Sequence[Fragment]) -> None:
        if not fragments:
            return

        check_dimensions(fragments, await self._existing_dimension())
        await self._add(fragments)

        logger.info("chunks_added", count=len(fragments))

    async def _get(self, where: Dict[str, Any] = None) -> List[Fragment]:
        kwargs = {"include": ["documents", "metadatas", "embeddings"]}
        if where:
            kwargs["where"] = where
        results = await self._call("get", self.collection.get, **kwargs)

        ids = results["ids"]
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = [None] * len(ids)

        rows = zip(ids, results["documents"], embeddings, results["metadatas"])
        ordered = sorted(rows, key=lambda row: row[3].get(SEQUENCE_KEY, 0))
        return [self._to_fragment(*row) for row in ordered]

    async def get_all_chunks(self) -> List[Fragment]:
        return await self._get()

    async def get_chunks_by_file_name(self, file_name: str) -> List[Fragment]:
        return await self._get(where={"fileName": file_name})

    async def delete_chunks_by_file_name(self, file_name: str) -> int:
        results = await self._call(
            "get", self.collection.get, where={"fileName": file_name}, include=[]
        )
        ids = results["ids"]
        if ids:
            await self._call("delete", self.collection.delete, ids=ids)

        logger.info("chunks_deleted", file_name=file_name, removed=len(ids))
        return len(ids)

    async def replace_chunks(
        self, file_names: Sequence[str], fragments: Sequence[Fragment]
    ) -> int:
        names = list(dict.fromkeys(file_names))
        old_ids: List[str] = []
        if names:
            results = await self._call(
                "get", self.collection.get, where={"fileName": {"$in": names}}, include=[]
            )
            old_ids = results["ids"]

        if fragments:
            others = {"fileName": {"$nin": names}} if names else None
            check_dimensions(fragments, await self._existing_dimension(where=others))
            # New fragments go in before the old ones leave; a failed add
            # leaves the previous version in place
            await self._add(fragments)

        if old_ids:
            await self._call("delete", self.collection.delete, ids=old_ids)

        logger.info(
            "chunks_replaced",
            files=names,
            removed=len(old_ids),
            added=len(fragments),
        )
        return len(old_ids)

    async def clear(self) -> None:
        await self._call("delete_collection", self.client.delete_collection, self.collection_name)
        self.collection = await asyncio.to_thread(self._get_collection)
        logger.warning("vector_store_cleared", collection=self.collection_name)

    async def find_most_similar(
        self, query_embedding: Sequence[float], top_k: int
    ) -> List[ScoredFragment]:
        if top_k <= 0:
            return []

        count = await self._call("count", self.collection.count)
        if count == 0:
            return []

        dimension = await self._existing_dimension()
        if dimension is not None and dimension != len(query_embedding):
            raise DimensionMismatchError(dimension, len(query_embedding))

        results = await self._call(
            "query",
            self.collection.query,
            query_embeddings=[list(query_embedding)],
            n_results=min(top_k, count),
            include=["documents", "metadatas", "embeddings", "distances"],
        )

        if not results.get("ids") or not results["ids"][0]:
            return []

        ids = results["ids"][0]
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        embeddings = (
            results["embeddings"][0]
            if results.get("embeddings") is not None
            else [None] * len(ids)
        )
        distances = (
            results["distances"][0]
            if results.get("distances") is not None
            else [None] * len(ids)
        )

        hits = []
        for chunk_id, text, embedding, metadata, distance in zip(
            ids, documents, embeddings, metadatas, distances
        ):
            similarity = None if distance is None else distance_to_similarity(distance)
            hits.append(
                (
                    metadata.get(SEQUENCE_KEY, 0),
                    ScoredFragment(
                        fragment=self._to_fragment(chunk_id, text, embedding, metadata),
                        similarity=similarity,
                    ),
                )
            )

        # Best first; equal scores keep insertion order. Missing scores sort last.
        hits.sort(
            key=lambda hit: (
                hit[1].similarity is None,
                -(hit[1].similarity or 0.0),
                hit[0],
            )
        )

        logger.info("vector_search_completed", top_k=top_k, results_found=len(hits))

        return [scored for _, scored in hits]
