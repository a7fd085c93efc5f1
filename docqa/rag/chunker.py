"""Text chunking for the RAG pipeline.

Two policies are available, selected by `config.CHUNK_POLICY`:

- ``sentence`` (default): sentences are packed greedily into fragments of at
  most ``max_chars`` characters, joined by single spaces, with no overlap. A
  sentence longer than ``max_chars`` becomes a fragment of its own.
- ``words``: a sliding window of ``window_words`` words advanced by
  ``window_words - overlap_words`` words each step.

Both expect normalized text (whitespace runs collapsed) and never produce
empty fragments.
"""
import re
from typing import List
import structlog

from docqa import config

logger = structlog.get_logger()

SENTENCE_POLICY = "sentence"
WORDS_POLICY = "words"
POLICIES = (SENTENCE_POLICY, WORDS_POLICY)

# Split after terminal punctuation (optionally followed by closing quotes or
# brackets) when whitespace follows.
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])[\"')\]]*\s+")


def split_sentences(text: str) -> List[str]:
    """Split text into sentence-like units, dropping blank ones."""
    units = []
    position = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        # Keep closing quotes/brackets with the sentence they end
        end = match.start() + len(match.group(0).rstrip())
        units.append(text[position:end])
        position = match.end()
    units.append(text[position:])
    return [u.strip() for u in units if u.strip()]


class TextChunker:
    """Splits normalized document text into bounded fragments."""

    def __init__(
        self,
        policy: str = None,
        max_chars: int = None,
        window_words: int = None,
        overlap_words: int = None,
    ):
        """Initialize the text chunker.

        Args:
            policy: "sentence" or "words" (default from config)
            max_chars: Target maximum fragment size for the sentence policy
            window_words: Window size in words for the words policy
            overlap_words: Words shared by consecutive windows
        """
        self.policy = policy or config.CHUNK_POLICY
        self.max_chars = max_chars or config.CHUNK_SIZE
        self.window_words = window_words or config.CHUNK_WORDS
        self.overlap_words = (
            config.CHUNK_OVERLAP if overlap_words is None else overlap_words
        )

        if self.policy not in POLICIES:
            raise ValueError(
                f"Unknown chunk policy '{self.policy}', expected one of {POLICIES}"
            )

        if self.max_chars <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.max_chars}")

        if self.policy == WORDS_POLICY and not 0 <= self.overlap_words < self.window_words:
            raise ValueError(
                f"Overlap ({self.overlap_words}) must be less than "
                f"window size ({self.window_words})"
            )

        logger.info(
            "chunker_initialized",
            policy=self.policy,
            max_chars=self.max_chars,
            window_words=self.window_words,
            overlap_words=self.overlap_words,
        )

    def chunk(self, text: str) -> List[str]:
        """Split text into ordered fragments.

        Args:
            text: Normalized document text

        Returns:
            Fragments in source order; empty for blank input
        """
        if not text or not text.strip():
            return []

        if self.policy == WORDS_POLICY:
            chunks = self._chunk_words(text)
        else:
            chunks = self._chunk_sentences(text)

        logger.debug(
            "text_chunked",
            policy=self.policy,
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return chunks

    def _chunk_sentences(self, text: str) -> List[str]:
        chunks = []
        buffer = ""

        for unit in split_sentences(text):
            if not buffer:
                buffer = unit
            # +1 for the joining space
            elif len(buffer) + 1 + len(unit) > self.max_chars:
                chunks.append(buffer)
                buffer = unit
            else:
                buffer = f"{buffer} {unit}"

        if buffer:
            chunks.append(buffer)

        return chunks

    def _chunk_words(self, text: str) -> List[str]:
        words = text.split()
        step = self.window_words - self.overlap_words
        chunks = []

        for start in range(0, len(words), step):
            chunks.append(" ".join(words[start : start + self.window_words]))
            # Later windows would only repeat words already covered
            if start + self.window_words >= len(words):
                break

        return chunks

    def get_chunk_stats(self, chunks: List[str]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: Fragments produced by chunk()

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "policy": self.policy,
        }
