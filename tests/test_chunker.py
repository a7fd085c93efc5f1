"""Tests for sentence-packing and word-window chunking."""
import pytest

from docqa.rag.chunker import TextChunker, split_sentences
from docqa.rag.extract import normalize_text

SAMPLE = (
    "Retrieval augmented generation grounds answers in documents. "
    "Each document is split into fragments! Are fragments embedded? "
    "Yes, every fragment gets a vector. The vectors live in a store. "
    "Queries are embedded the same way and compared by cosine similarity."
)


def _non_whitespace(text: str) -> str:
    return "".join(text.split())


def test_split_sentences_keeps_punctuation():
    """Test that sentence units end with their terminal punctuation."""
    units = split_sentences('He said "stop." Then left! Why? Done')
    assert units == ['He said "stop."', "Then left!", "Why?", "Done"]


@pytest.mark.parametrize("text", ["", "   ", "\n\t  \n"])
def test_blank_input_yields_no_fragments(text):
    """Test that empty or whitespace-only input produces nothing."""
    assert TextChunker(policy="sentence").chunk(text) == []
    assert TextChunker(policy="words", window_words=5, overlap_words=1).chunk(text) == []


@pytest.mark.parametrize("max_chars", [20, 60, 120, 1000])
def test_sentence_chunks_cover_input_exactly_once(max_chars):
    """Test that concatenated fragments reproduce all non-whitespace content."""
    text = normalize_text(SAMPLE)
    chunks = TextChunker(policy="sentence", max_chars=max_chars).chunk(text)

    assert "".join(_non_whitespace(c) for c in chunks) == _non_whitespace(text)
    assert all(c.strip() for c in chunks)


@pytest.mark.parametrize("max_chars", [20, 60, 120])
def test_sentence_chunks_respect_size_bound(max_chars):
    """Test that only single oversized sentences exceed the bound."""
    text = normalize_text(SAMPLE)
    sentences = set(split_sentences(text))

    for chunk in TextChunker(policy="sentence", max_chars=max_chars).chunk(text):
        assert len(chunk) <= max_chars or chunk in sentences


def test_oversized_sentence_is_emitted_verbatim():
    """Test that a sentence longer than the bound becomes its own fragment."""
    long_sentence = "word " * 40 + "end."
    text = normalize_text(f"Short one. {long_sentence} Tail.")
    chunks = TextChunker(policy="sentence", max_chars=30).chunk(text)

    assert chunks == ["Short one.", normalize_text(long_sentence), "Tail."]


def test_sentences_are_packed_greedily():
    """Test that sentences share a fragment while they fit."""
    chunks = TextChunker(policy="sentence", max_chars=25).chunk("A b. C d. E f. G h. I j.")
    assert chunks == ["A b. C d. E f. G h. I j."]

    chunks = TextChunker(policy="sentence", max_chars=10).chunk("A b. C d. E f. G h. I j.")
    assert chunks == ["A b. C d.", "E f. G h.", "I j."]


def test_word_windows_overlap():
    """Test that consecutive word windows share the configured overlap."""
    text = " ".join(f"w{i}" for i in range(10))
    chunks = TextChunker(policy="words", window_words=4, overlap_words=1).chunk(text)

    assert chunks == ["w0 w1 w2 w3", "w3 w4 w5 w6", "w6 w7 w8 w9"]


def test_word_windows_stop_once_input_is_covered():
    """Test that no trailing window repeats only already-covered words."""
    text = " ".join(f"w{i}" for i in range(6))
    chunks = TextChunker(policy="words", window_words=5, overlap_words=2).chunk(text)

    assert chunks == ["w0 w1 w2 w3 w4", "w3 w4 w5"]


def test_invalid_configuration_is_rejected():
    """Test that bad policies and overlaps fail at construction."""
    with pytest.raises(ValueError):
        TextChunker(policy="paragraph")
    with pytest.raises(ValueError):
        TextChunker(policy="words", window_words=5, overlap_words=5)


def test_chunk_stats():
    """Test statistics over produced chunks."""
    chunker = TextChunker(policy="sentence", max_chars=60)
    stats = chunker.get_chunk_stats(chunker.chunk(normalize_text(SAMPLE)))

    assert stats["chunk_count"] > 1
    assert stats["min_chunk_size"] <= stats["avg_chunk_size"] <= stats["max_chunk_size"]
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
