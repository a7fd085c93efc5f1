"""Data types shared by the RAG pipeline.

Fragments are serialised with camelCase keys, which is the layout of the
persisted snapshot (`{"chunks": [...], "lastUpdated": ...}`).
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class FragmentMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    file_name: str = Field(alias="fileName")
    chunk_index: int = Field(alias="chunkIndex", ge=0)
    upload_date: str = Field(alias="uploadDate")
    file_type: str = Field(alias="fileType")


class Fragment(BaseModel):
    """A slice of a source document stored with its embedding."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    text: str
    embedding: List[float]
    metadata: FragmentMetadata


class ScoredFragment(BaseModel):
    """A fragment returned by a similarity query.

    `similarity` is always "higher is more similar"; it is None only when a
    backend cannot report a score.
    """

    fragment: Fragment
    similarity: Optional[float] = None


class StoreStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_chunks: int = Field(alias="totalChunks")
    unique_files: int = Field(alias="uniqueFiles")


class Snapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chunks: List[Fragment] = Field(default_factory=list)
    last_updated: str = Field(alias="lastUpdated", default_factory=utc_now_iso)


class ConversationMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class UploadedDocument(BaseModel):
    """A raw uploaded file before text extraction."""

    file_name: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)
