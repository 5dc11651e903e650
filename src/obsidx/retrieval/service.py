"""Search service — the query surface over an opened index.

Every method returns plain values. A missing note is ``None`` and an empty
match is ``[]``; neither raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, TypeAlias

from obsidx.indexer.text_index import SEARCHABLE_FIELDS
from obsidx.retrieval.fusion import DEFAULT_RRF_K, reciprocal_rank_fusion

if TYPE_CHECKING:
    from collections.abc import Sequence

    from obsidx.indexer.text_index import TextIndex
    from obsidx.indexer.vector_store import VectorStore
    from obsidx.vault.models import Note

logger = logging.getLogger(__name__)

SearchMode: TypeAlias = Literal["lexical", "semantic", "hybrid"]


@dataclass(frozen=True, slots=True)
class SearchResult:
    path: str
    score: float
    title: str = ""
    snippet: str = ""


@dataclass(frozen=True, slots=True)
class IndexStats:
    notes: int
    chunks: int
    tags: int
    collections: list[str]


class VaultSearch:
    """Lexical, semantic, and fused queries plus note, link, and tag lookups."""

    def __init__(
        self,
        text_index: TextIndex,
        vector_store: VectorStore,
        rrf_k: int = DEFAULT_RRF_K,
    ) -> None:
        self.text_index = text_index
        self.vector_store = vector_store
        self.rrf_k = rrf_k

    # ------------------------------------------------------------------
    # Ranked search
    # ------------------------------------------------------------------

    def lexical(
        self,
        query: str,
        limit: int = 20,
        collection: str | None = None,
        fields: Sequence[str] = SEARCHABLE_FIELDS,
    ) -> list[SearchResult]:
        hits = self.text_index.query_ranked(query, fields=fields, limit=limit, collection=collection)
        return [SearchResult(path=h.path, score=h.score) for h in hits]

    def semantic(
        self,
        query: str,
        limit: int = 20,
        collection: str | None = None,
    ) -> list[SearchResult]:
        """Best chunk per note, notes ordered by that chunk's similarity."""
        # Collapse over every scored chunk; one long note can fill any fixed window
        hits = self.vector_store.query_by_similarity(query, limit=None, collection=collection)
        results: list[SearchResult] = []
        seen: set[str] = set()
        for hit in hits:
            if hit.path in seen:
                continue
            seen.add(hit.path)
            results.append(SearchResult(path=hit.path, score=hit.score, snippet=hit.chunk.content))
            if len(results) == limit:
                break
        return results

    def hybrid(
        self,
        query: str,
        limit: int = 20,
        collection: str | None = None,
    ) -> list[SearchResult]:
        """Reciprocal Rank Fusion of the lexical and semantic lists."""
        lexical = self.lexical(query, limit=limit, collection=collection)
        semantic = self.semantic(query, limit=limit, collection=collection)
        snippets = {r.path: r.snippet for r in semantic}

        fused = reciprocal_rank_fusion(
            [[r.path for r in lexical], [r.path for r in semantic]],
            limit=limit,
            k=self.rrf_k,
        )
        logger.debug(
            "Hybrid %r: %d lexical, %d semantic, %d fused",
            query,
            len(lexical),
            len(semantic),
            len(fused),
        )
        return [SearchResult(path=f.path, score=f.score, snippet=snippets.get(f.path, "")) for f in fused]

    def search(
        self,
        query: str,
        limit: int = 20,
        collection: str | None = None,
        mode: SearchMode = "hybrid",
    ) -> list[SearchResult]:
        if mode == "lexical":
            results = self.lexical(query, limit=limit, collection=collection)
        elif mode == "semantic":
            results = self.semantic(query, limit=limit, collection=collection)
        else:
            results = self.hybrid(query, limit=limit, collection=collection)
        return [self._with_title(r) for r in results]

    def _with_title(self, result: SearchResult) -> SearchResult:
        note = self.text_index.exact_lookup("path", result.path)
        if note is None:
            return result
        snippet = result.snippet or note.body[:200]
        return SearchResult(path=result.path, score=result.score, title=note.title, snippet=snippet)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, path: str, collection: str | None = None) -> Note | None:
        """The stored note at *path*, or ``None`` if absent or outside *collection*."""
        note = self.text_index.exact_lookup("path", path)
        if note is None:
            return None
        if collection is not None and note.collection != collection:
            return None
        return note

    def links(self, path: str, collection: str | None = None) -> list[str] | None:
        """Outbound links of the note at *path*; ``None`` if there is no such note."""
        note = self.get(path, collection)
        return note.links if note is not None else None

    def backlinks(self, target: str, collection: str | None = None) -> list[str]:
        """Sorted paths of notes whose outbound links contain *target* exactly."""
        notes = self.text_index.term_lookup("links", target, collection=collection)
        return [n.path for n in notes]

    def tags(self, collection: str | None = None) -> list[tuple[str, int]]:
        return self.text_index.tag_counts(collection)

    def tagged(self, tag: str, collection: str | None = None) -> list[str]:
        notes = self.text_index.term_lookup("tags", tag, collection=collection)
        return [n.path for n in notes]

    def stats(self, collection: str | None = None) -> IndexStats:
        return IndexStats(
            notes=self.text_index.count(collection),
            chunks=self.vector_store.chunk_count(collection),
            tags=len(self.text_index.tag_counts(collection)),
            collections=self.text_index.collections(),
        )
