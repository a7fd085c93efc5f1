"""Tests for the FAISS-backed vector store."""
import math

import pytest

from docqa.errors import DimensionMismatchError
from docqa.rag.store_faiss import FAISSVectorStore

from conftest import make_fragment


@pytest.fixture
def faiss_store(tmp_path) -> FAISSVectorStore:
    return FAISSVectorStore(index_dir=tmp_path / "faiss")


async def test_scores_are_cosine_similarities(faiss_store):
    """Test that inner product over normalised vectors matches cosine."""
    await faiss_store.add_chunks(
        [
            make_fragment("same", [2.0, 0.0], chunk_index=0),
            make_fragment("diagonal", [1.0, 1.0], chunk_index=1),
            make_fragment("opposite", [-1.0, 0.0], chunk_index=2),
        ]
    )

    results = await faiss_store.find_most_similar([1.0, 0.0], 3)

    assert [r.fragment.text for r in results] == ["same", "diagonal", "opposite"]
    assert math.isclose(results[0].similarity, 1.0, rel_tol=1e-5)
    assert math.isclose(results[1].similarity, math.sqrt(0.5), rel_tol=1e-5)
    assert math.isclose(results[2].similarity, -1.0, rel_tol=1e-5)


async def test_k_larger_than_store(faiss_store):
    await faiss_store.add_chunks([make_fragment("only", [1.0, 0.0])])
    results = await faiss_store.find_most_similar([0.0, 1.0], 10)
    assert len(results) == 1


async def test_empty_store(faiss_store):
    assert await faiss_store.find_most_similar([1.0, 0.0], 3) == []


async def test_ties_keep_insertion_order(faiss_store):
    await faiss_store.add_chunks(
        [make_fragment(f"t{i}", [1.0, 0.0], chunk_index=i) for i in range(4)]
    )
    results = await faiss_store.find_most_similar([1.0, 0.0], 4)
    assert [r.fragment.text for r in results] == ["t0", "t1", "t2", "t3"]


async def test_round_trip_survives_restart(tmp_path):
    """Test that fragments and index are reloaded by a new instance."""
    a = make_fragment("alpha", [1.0, 0.0], chunk_index=0)
    b = make_fragment("beta", [0.0, 1.0], chunk_index=1)
    await FAISSVectorStore(index_dir=tmp_path).add_chunks([a, b])

    restarted = FAISSVectorStore(index_dir=tmp_path)
    assert await restarted.get_all_chunks() == [a, b]
    results = await restarted.find_most_similar([0.0, 1.0], 1)
    assert results[0].fragment == b


async def test_delete_rebuilds_index(faiss_store):
    await faiss_store.add_chunks(
        [
            make_fragment("a", [1.0, 0.0], file_name="a.txt"),
            make_fragment("b", [0.0, 1.0], file_name="b.txt"),
        ]
    )

    assert await faiss_store.delete_chunks_by_file_name("a.txt") == 1

    results = await faiss_store.find_most_similar([1.0, 0.0], 5)
    assert [r.fragment.text for r in results] == ["b"]
    stats = await faiss_store.get_stats()
    assert (stats.total_chunks, stats.unique_files) == (1, 1)


async def test_dimension_checks(faiss_store):
    await faiss_store.add_chunks([make_fragment("a", [1.0, 0.0])])

    with pytest.raises(DimensionMismatchError):
        await faiss_store.find_most_similar([1.0, 0.0, 0.0], 1)
    with pytest.raises(DimensionMismatchError):
        await faiss_store.add_chunks([make_fragment("b", [1.0], chunk_index=1)])


async def test_clear(faiss_store):
    await faiss_store.add_chunks([make_fragment("a", [1.0, 0.0])])
    await faiss_store.clear()

    assert await faiss_store.get_all_chunks() == []
    assert await faiss_store.find_most_similar([1.0, 0.0], 1) == []


async def test_replace_chunks(faiss_store):
    await faiss_store.add_chunks(
        [
            make_fragment("old a", [1.0, 0.0], file_name="a.txt"),
            make_fragment("b", [0.0, 1.0], file_name="b.txt"),
        ]
    )

    with pytest.raises(DimensionMismatchError):
        await faiss_store.replace_chunks(["a.txt"], [make_fragment("bad", [1.0], file_name="a.txt")])
    assert [f.text for f in await faiss_store.get_all_chunks()] == ["old a", "b"]

    assert await faiss_store.replace_chunks(
        ["a.txt"], [make_fragment("new a", [1.0, 0.0], file_name="a.txt", fragment_id="new")]
    ) == 1

    results = await faiss_store.find_most_similar([1.0, 0.0], 5)
    assert [r.fragment.text for r in results] == ["new a", "b"]
