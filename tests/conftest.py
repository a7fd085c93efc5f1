"""Shared fixtures: deterministic model fakes and isolated state objects."""
import hashlib
import re
from typing import List

import pytest

from docqa.memory.history import ConversationHistory
from docqa.rag.chunker import TextChunker
from docqa.rag.ingest import IngestPipeline
from docqa.rag.models import Fragment, FragmentMetadata
from docqa.rag.orchestrator import RetrievalOrchestrator
from docqa.rag.retriever import Retriever
from docqa.rag.store_json import JSONVectorStore

EMBEDDING_DIM = 64
TEST_MODEL = "gemma3:4b"


class FakeEmbedder:
    """Bag-of-words hashing embedder: shared words give positive similarity."""

    def __init__(self, dimension: int = EMBEDDING_DIM):
        self.dimension = dimension
        self.calls: List[str] = []
        self.error = None

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        vector = [0.0] * self.dimension
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        return vector


class FakeGenerator:
    """Answers with the context section of the prompt."""

    def __init__(self):
        self.calls = []
        self.error = None

    async def generate(self, model: str, prompt: str) -> str:
        self.calls.append((model, prompt))
        if self.error is not None:
            raise self.error
        context = prompt.split("Context:\n", 1)[-1].split("\n\nQuestion:", 1)[0]
        return f"According to the documents: {context.strip()}"


def make_fragment(
    text: str,
    embedding: List[float],
    file_name: str = "doc.txt",
    chunk_index: int = 0,
    fragment_id: str = None,
) -> Fragment:
    return Fragment(
        id=fragment_id or f"{file_name}-{chunk_index}",
        text=text,
        embedding=embedding,
        metadata=FragmentMetadata(
            file_name=file_name,
            chunk_index=chunk_index,
            upload_date="2026-01-01T00:00:00+00:00",
            file_type=".txt",
        ),
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def json_store(tmp_path) -> JSONVectorStore:
    return JSONVectorStore(db_path=tmp_path / "vector-db.json")


@pytest.fixture
def history() -> ConversationHistory:
    return ConversationHistory(max_messages=10)


@pytest.fixture
def pipeline(json_store, embedder, tmp_path) -> IngestPipeline:
    return IngestPipeline(
        json_store,
        embedder,
        chunker=TextChunker(policy="sentence", max_chars=200),
        upload_dir=tmp_path / "uploads",
        save_uploads=False,
    )


@pytest.fixture
def orchestrator(json_store, embedder, generator, history) -> RetrievalOrchestrator:
    return RetrievalOrchestrator(
        Retriever(json_store, embedder, top_k=3),
        generator,
        history,
        valid_models=[TEST_MODEL, "llama3.2:3b"],
        default_model=TEST_MODEL,
        prompt_style="full",
    )
