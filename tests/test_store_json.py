"""Tests for similarity ranking and the JSON snapshot vector store."""
import asyncio
import json
import math

import pytest

from docqa.errors import DimensionMismatchError
from docqa.rag.store import cosine_similarity, rank_by_similarity
from docqa.rag.store_json import JSONVectorStore

from conftest import make_fragment


@pytest.mark.parametrize(
    "vector", [[1.0, 0.0, 0.0], [0.3, -2.0, 5.5], [1e-3, 1e-3, 1e-3]]
)
def test_similarity_identity(vector):
    """Test that a non-zero vector is fully similar to itself."""
    assert math.isclose(cosine_similarity(vector, vector), 1.0, rel_tol=1e-9)


def test_similarity_opposite_and_orthogonal():
    assert math.isclose(cosine_similarity([1, 0], [-1, 0]), -1.0)
    assert math.isclose(cosine_similarity([1, 0], [0, 1]), 0.0, abs_tol=1e-12)


def test_similarity_dimension_mismatch():
    """Test that vectors of different lengths are rejected."""
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_rank_is_stable_for_ties():
    """Test that equal scores keep insertion order."""
    fragments = [
        make_fragment("a", [1.0, 0.0], chunk_index=0),
        make_fragment("b", [2.0, 0.0], chunk_index=1),
        make_fragment("c", [0.0, 1.0], chunk_index=2),
        make_fragment("d", [3.0, 0.0], chunk_index=3),
    ]
    ranked = rank_by_similarity([1.0, 0.0], fragments, top_k=10)

    assert [r.fragment.text for r in ranked] == ["a", "b", "d", "c"]


async def test_round_trip_survives_restart(tmp_path):
    """Test that added fragments are durable and keep insertion order."""
    path = tmp_path / "vector-db.json"
    a = make_fragment("alpha", [1.0, 0.0], chunk_index=0)
    b = make_fragment("beta", [0.0, 1.0], chunk_index=1)

    await JSONVectorStore(db_path=path).add_chunks([a, b])

    restarted = JSONVectorStore(db_path=path)
    assert await restarted.get_all_chunks() == [a, b]


async def test_snapshot_format(json_store):
    """Test the persisted document layout."""
    await json_store.add_chunks([make_fragment("alpha", [1.0, 0.0])])

    data = json.loads(json_store.db_path.read_text())
    assert set(data) == {"chunks", "lastUpdated"}
    assert data["chunks"][0]["metadata"]["fileName"] == "doc.txt"
    assert data["chunks"][0]["metadata"]["chunkIndex"] == 0


async def test_reads_see_external_writes(tmp_path):
    """Test that each read reloads the snapshot written by another instance."""
    path = tmp_path / "vector-db.json"
    reader = JSONVectorStore(db_path=path)
    assert await reader.get_all_chunks() == []

    await JSONVectorStore(db_path=path).add_chunks([make_fragment("x", [1.0])])

    assert len(await reader.get_all_chunks()) == 1


async def test_find_most_similar_ordering(json_store):
    """Test that results are sorted and bounded by k."""
    await json_store.add_chunks(
        [
            make_fragment("far", [0.0, 1.0], chunk_index=0),
            make_fragment("near", [1.0, 0.1], chunk_index=1),
            make_fragment("mid", [1.0, 1.0], chunk_index=2),
        ]
    )

    top_two = await json_store.find_most_similar([1.0, 0.0], 2)
    assert [r.fragment.text for r in top_two] == ["near", "mid"]

    everything = await json_store.find_most_similar([1.0, 0.0], 10)
    assert len(everything) == 3
    scores = [r.similarity for r in everything]
    assert scores == sorted(scores, reverse=True)


async def test_find_most_similar_on_empty_store(json_store):
    assert await json_store.find_most_similar([1.0, 0.0], 5) == []


async def test_query_dimension_mismatch(json_store):
    await json_store.add_chunks([make_fragment("x", [1.0, 0.0])])
    with pytest.raises(DimensionMismatchError):
        await json_store.find_most_similar([1.0, 0.0, 0.0], 1)


async def test_add_rejects_mixed_dimensions(json_store):
    """Test that the store keeps one embedding length."""
    await json_store.add_chunks([make_fragment("x", [1.0, 0.0])])
    with pytest.raises(DimensionMismatchError):
        await json_store.add_chunks([make_fragment("y", [1.0, 0.0, 0.0], chunk_index=1)])

    assert len(await json_store.get_all_chunks()) == 1


async def test_delete_by_file_name_and_stats(json_store):
    await json_store.add_chunks(
        [
            make_fragment("a0", [1.0, 0.0], file_name="a.txt", chunk_index=0),
            make_fragment("a1", [1.0, 0.0], file_name="a.txt", chunk_index=1),
            make_fragment("b0", [0.0, 1.0], file_name="b.txt", chunk_index=0),
        ]
    )

    stats = await json_store.get_stats()
    assert (stats.total_chunks, stats.unique_files) == (3, 2)
    assert [f.text for f in await json_store.get_chunks_by_file_name("a.txt")] == ["a0", "a1"]

    assert await json_store.delete_chunks_by_file_name("a.txt") == 2
    assert await json_store.delete_chunks_by_file_name("missing.txt") == 0

    stats = await json_store.get_stats()
    assert (stats.total_chunks, stats.unique_files) == (1, 1)


async def test_clear(json_store):
    await json_store.add_chunks([make_fragment("x", [1.0])])
    await json_store.clear()
    assert await json_store.get_all_chunks() == []


async def test_concurrent_adds_do_not_lose_fragments(json_store):
    """Test that parallel writers are serialised instead of overwriting each other."""
    batches = [
        [make_fragment(f"f{i}", [1.0, float(i)], file_name=f"f{i}.txt")]
        for i in range(10)
    ]

    await asyncio.gather(*(json_store.add_chunks(batch) for batch in batches))

    stored = await json_store.get_all_chunks()
    assert sorted(f.text for f in stored) == sorted(f"f{i}" for i in range(10))


async def test_replace_chunks_swaps_files_in_one_write(json_store):
    await json_store.add_chunks(
        [
            make_fragment("old a", [1.0, 0.0], file_name="a.txt"),
            make_fragment("b", [0.0, 1.0], file_name="b.txt"),
        ]
    )

    removed = await json_store.replace_chunks(
        ["a.txt"], [make_fragment("new a", [1.0, 1.0], file_name="a.txt", fragment_id="new")]
    )

    assert removed == 1
    assert [f.text for f in await json_store.get_all_chunks()] == ["b", "new a"]


async def test_rejected_replace_leaves_store_unchanged(json_store):
    """Test that a dimension failure keeps the old fragments of the file."""
    original = [
        make_fragment("a", [1.0, 0.0], file_name="a.txt"),
        make_fragment("b", [0.0, 1.0], file_name="b.txt"),
    ]
    await json_store.add_chunks(original)

    with pytest.raises(DimensionMismatchError):
        await json_store.replace_chunks(["a.txt"], [make_fragment("a2", [1.0], file_name="a.txt")])

    assert await json_store.get_all_chunks() == original
