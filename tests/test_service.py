"""Tests for the search service over populated stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from obsidx.config import ChunkConfig
from obsidx.errors import InvalidQueryError
from obsidx.retrieval.service import VaultSearch

from .helpers import make_note

if TYPE_CHECKING:
    from obsidx.indexer.text_index import TextIndex
    from obsidx.indexer.vector_store import VectorStore


@pytest.fixture
def populated(
    text_index: TextIndex, vector_store: VectorStore, chunking: ChunkConfig
) -> VaultSearch:
    notes = [
        make_note("rust.md", "ownership and borrowing in rust", title="Rust", tags=["lang"], links=["cargo"]),
        make_note("python.md", "asyncio event loop in python", title="Python", tags=["lang", "py"]),
        make_note("garden.md", "tomatoes need sun", title="Garden", collection="home", tags=["outdoor"]),
        make_note("cargo.md", "the rust build tool", title="Cargo", links=["rust.md"]),
    ]
    text_index.upsert_batch(notes)
    vector_store.upsert_notes(notes, chunking)
    return VaultSearch(text_index, vector_store)


class TestSearch:
    def test_lexical(self, populated: VaultSearch) -> None:
        results = populated.search("rust", mode="lexical")
        assert [r.path for r in results] == ["rust.md", "cargo.md"]
        assert results[0].title == "Rust"
        assert results[0].snippet == "ownership and borrowing in rust"

    def test_semantic_one_result_per_note(self, populated: VaultSearch) -> None:
        results = populated.search("tomatoes need sun", mode="semantic")
        paths = [r.path for r in results]
        assert paths[0] == "garden.md"
        assert len(paths) == len(set(paths))
        assert results[0].snippet == "tomatoes need sun"

    def test_hybrid_fuses_both_rankings(self, populated: VaultSearch) -> None:
        results = populated.search("asyncio event loop in python", mode="hybrid", limit=4)
        assert results[0].path == "python.md"
        assert results[0].score == pytest.approx(2 / 61)
        assert results[0].title == "Python"

    def test_hybrid_collection_filter(self, populated: VaultSearch) -> None:
        results = populated.hybrid("tomatoes", collection="home")
        assert [r.path for r in results] == ["garden.md"]

    def test_limit(self, populated: VaultSearch) -> None:
        assert len(populated.search("rust", mode="semantic", limit=2)) == 2

    def test_invalid_query_propagates(self, populated: VaultSearch) -> None:
        with pytest.raises(InvalidQueryError):
            populated.search('"unterminated', mode="lexical")


class TestLookups:
    def test_get(self, populated: VaultSearch) -> None:
        note = populated.get("python.md")
        assert note is not None
        assert note.title == "Python"
        assert populated.get("nope.md") is None

    def test_get_respects_collection(self, populated: VaultSearch) -> None:
        assert populated.get("garden.md", collection="home") is not None
        assert populated.get("garden.md", collection="default") is None

    def test_links_and_backlinks(self, populated: VaultSearch) -> None:
        assert populated.links("rust.md") == ["cargo"]
        assert populated.backlinks("rust.md") == ["cargo.md"]
        assert populated.backlinks("rust") == []
        assert populated.backlinks("cargo", collection="home") == []

    def test_tags_and_tagged(self, populated: VaultSearch) -> None:
        assert populated.tags() == [("lang", 2), ("outdoor", 1), ("py", 1)]
        assert populated.tags("home") == [("outdoor", 1)]
        assert populated.tagged("lang") == ["python.md", "rust.md"]
        assert populated.tagged("missing") == []

    def test_stats(self, populated: VaultSearch) -> None:
        stats = populated.stats()
        assert stats.notes == 4
        assert stats.chunks == 4
        assert stats.tags == 3
        assert stats.collections == ["default", "home"]
        assert populated.stats("home").notes == 1


class TestSemanticFill:
    def test_long_note_does_not_crowd_out_others(
        self, text_index: TextIndex, vector_store: VectorStore
    ) -> None:
        tiny = ChunkConfig(max_chars=10, overlap=0)
        notes = [make_note("big.md", "q" * 200)]
        notes += [make_note(f"near{i}.md", "qqqqqqqqqx") for i in range(3)]
        vector_store.upsert_notes(notes, tiny)
        service = VaultSearch(text_index, vector_store)

        results = service.semantic("q" * 10, limit=2)

        assert [r.path for r in results][0] == "big.md"
        assert len(results) == 2
        assert results[1].path.startswith("near")

    def test_stats_chunks_follow_collection(
        self, text_index: TextIndex, vector_store: VectorStore
    ) -> None:
        tiny = ChunkConfig(max_chars=10, overlap=0)
        notes = [
            make_note("w.md", "x" * 30, collection="work"),
            make_note("h.md", "y" * 5, collection="home"),
        ]
        text_index.upsert_batch(notes)
        vector_store.upsert_notes(notes, tiny)
        service = VaultSearch(text_index, vector_store)

        assert service.stats().chunks == 4
        assert service.stats("work").chunks == 3
        assert service.stats("home").chunks == 1
        assert service.stats("elsewhere").chunks == 0
