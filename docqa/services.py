"""Process-wide state, built once at start-up and handed to the web app."""
from dataclasses import dataclass
from typing import Optional

from docqa import config
from docqa.llm_client import (
    EmbeddingProvider,
    GenerationProvider,
    OllamaClient,
    OllamaEmbeddingProvider,
    OllamaGenerationProvider,
)
from docqa.memory.history import ConversationHistory
from docqa.ratelimit import RateLimiter, create_chat_limiter, create_upload_limiter
from docqa.rag.chunker import TextChunker
from docqa.rag.ingest import IngestPipeline
from docqa.rag.orchestrator import RetrievalOrchestrator
from docqa.rag.retriever import Retriever
from docqa.rag.store import VectorStore, create_vector_store


@dataclass
class Services:
    vector_store: VectorStore
    history: ConversationHistory
    ingest: IngestPipeline
    orchestrator: RetrievalOrchestrator
    chat_limiter: RateLimiter
    upload_limiter: RateLimiter
    ollama: Optional[OllamaClient] = None


def build_services(
    vector_store: Optional[VectorStore] = None,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[GenerationProvider] = None,
    history: Optional[ConversationHistory] = None,
    chat_limiter: Optional[RateLimiter] = None,
    upload_limiter: Optional[RateLimiter] = None,
    chunker: Optional[TextChunker] = None,
    save_uploads: Optional[bool] = None,
) -> Services:
    """Wire the pipeline together; anything not supplied comes from config."""
    ollama = None
    if embedder is None or generator is None:
        ollama = OllamaClient()
    embedder = embedder or OllamaEmbeddingProvider(ollama)
    generator = generator or OllamaGenerationProvider(ollama)

    if vector_store is None:
        vector_store = create_vector_store(config.VECTOR_BACKEND)
    if history is None:
        history = ConversationHistory()
    if chat_limiter is None:
        chat_limiter = create_chat_limiter()
    if upload_limiter is None:
        upload_limiter = create_upload_limiter()

    return Services(
        vector_store=vector_store,
        history=history,
        ingest=IngestPipeline(
            vector_store, embedder, chunker=chunker, save_uploads=save_uploads
        ),
        orchestrator=RetrievalOrchestrator(
            Retriever(vector_store, embedder),
            generator,
            history,
        ),
        chat_limiter=chat_limiter,
        upload_limiter=upload_limiter,
        ollama=ollama,
    )
