"""Retrieval — rank fusion and the query surface over an opened index."""

from obsidx.retrieval.fusion import FusedHit, reciprocal_rank_fusion
from obsidx.retrieval.service import IndexStats, SearchResult, VaultSearch

__all__ = ["FusedHit", "IndexStats", "SearchResult", "VaultSearch", "reciprocal_rank_fusion"]
