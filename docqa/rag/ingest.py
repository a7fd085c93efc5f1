"""Ingest pipeline for uploaded documents.

Orchestrates:
- Upload validation
- Text extraction and normalization
- Chunking
- Embedding generation (one provider call per fragment)
- Vector store writes

A batch is all-or-nothing: every file is extracted, chunked and embedded
before anything is written, and the previous fragments of re-uploaded files
are swapped for the new ones in a single store write, so a failure at any
step commits nothing.
"""
import asyncio
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
import structlog

from docqa import config
from docqa.llm_client import EmbeddingProvider
from docqa.rag.chunker import TextChunker
from docqa.rag.extract import extract_text, normalize_text
from docqa.rag.models import Fragment, FragmentMetadata, UploadedDocument, utc_now_iso
from docqa.rag.store import VectorStore
from docqa.validation import file_extension, sanitize_file_name, validate_upload

logger = structlog.get_logger()


class IngestPipeline:
    """Turns uploaded documents into stored, embedded fragments."""

    def __init__(
        self,
        vector_store: VectorStore,
        embedder: EmbeddingProvider,
        chunker: Optional[TextChunker] = None,
        upload_dir: Path = None,
        save_uploads: bool = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            vector_store: Destination store
            embedder: Embedding provider
            chunker: Text chunker (default policy from config)
            upload_dir: Where raw uploads are kept (default from config)
            save_uploads: Whether to keep raw uploads on disk (default from config)
        """
        self.vector_store = vector_store
        self.embedder = embedder
        self.chunker = chunker or TextChunker()
        self.upload_dir = Path(upload_dir or config.UPLOAD_DIR)
        self.save_uploads = config.SAVE_UPLOADS if save_uploads is None else save_uploads

        logger.info(
            "ingest_pipeline_initialized",
            chunk_policy=self.chunker.policy,
            upload_dir=str(self.upload_dir),
            save_uploads=self.save_uploads,
        )

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed fragments one call at a time, in order."""
        embeddings = []
        for text in texts:
            embeddings.append(await self.embedder.embed(text))
        return embeddings

    async def build_fragments(
        self, document: UploadedDocument, upload_date: str
    ) -> List[Fragment]:
        """Extract, chunk and embed one document without storing it."""
        logger.info("ingesting_file", file_name=document.file_name, size=document.size)

        text = normalize_text(extract_text(document.file_name, document.content))
        chunks = self.chunker.chunk(text)

        if not chunks:
            logger.warning("no_chunks_created", file_name=document.file_name)
            return []

        embeddings = await self.embed_texts(chunks)
        file_type = file_extension(document.file_name)

        fragments = [
            Fragment(
                id=str(uuid.uuid4()),
                text=chunk,
                embedding=embedding,
                metadata=FragmentMetadata(
                    file_name=document.file_name,
                    chunk_index=index,
                    upload_date=upload_date,
                    file_type=file_type,
                ),
            )
            for index, (chunk, embedding) in enumerate(zip(chunks, embeddings))
        ]

        logger.info(
            "file_processed",
            file_name=document.file_name,
            chunks_created=len(fragments),
        )

        return fragments

    def _save_upload(self, document: UploadedDocument) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        target = self.upload_dir / sanitize_file_name(document.file_name)
        target.write_bytes(document.content)

    async def ingest_documents(
        self,
        documents: Sequence[UploadedDocument],
        max_files: int = None,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Dict[str, Any]:
        """Ingest a batch of uploaded documents.

        Re-uploading a file name replaces the fragments stored for it.

        Returns:
            {"chunksCreated", "totalChunks", "totalFiles"}

        Raises:
            ValidationError: If the batch or any file is rejected
            ModelNotFoundError, ProviderTimeoutError, InternalError: From the
                embedding provider or the store; nothing is stored in that case
        """
        validate_upload(documents, max_files=max_files)

        upload_date = utc_now_iso()
        all_fragments: List[Fragment] = []

        for idx, document in enumerate(documents, 1):
            if progress_callback:
                progress_callback(idx, len(documents), document.file_name)
            try:
                all_fragments.extend(await self.build_fragments(document, upload_date))
            except Exception as e:
                logger.error(
                    "file_ingestion_failed",
                    file_name=document.file_name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        if self.save_uploads:
            for document in documents:
                await asyncio.to_thread(self._save_upload, document)

        await self.vector_store.replace_chunks(
            [d.file_name for d in documents], all_fragments
        )

        stats = await self.vector_store.get_stats()

        result = {
            "chunksCreated": len(all_fragments),
            "totalChunks": stats.total_chunks,
            "totalFiles": stats.unique_files,
        }

        logger.info("ingest_completed", files=len(documents), **result)

        return result

    async def ingest_directory(
        self,
        directory: Path,
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Dict[str, Any]:
        """Ingest every supported file under a directory as one batch.

        Raises:
            FileNotFoundError: If the directory doesn't exist
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Directory not found: {directory}")

        paths = sorted(
            p
            for p in directory.rglob("*")
            if p.is_file()
            and p.stat().st_size > 0
            and file_extension(p.name) in config.ALLOWED_EXTENSIONS
        )

        logger.info("files_discovered", count=len(paths), directory=str(directory))

        documents = [
            UploadedDocument(
                file_name=p.relative_to(directory).as_posix(), content=p.read_bytes()
            )
            for p in paths
        ]
        return await self.ingest_documents(
            documents,
            max_files=max(len(documents), 1),
            progress_callback=progress_callback,
        )
