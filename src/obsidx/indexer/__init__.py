"""Indexer — lexical index, chunked vector store, embedders, and the index pipeline."""

from obsidx.indexer.chunker import TextSpan, chunk_text
from obsidx.indexer.embedder import Embedder, HashEmbedder, OpenAIEmbedder, create_embedder
from obsidx.indexer.pipeline import IndexReport, VaultIndexer
from obsidx.indexer.text_index import TextHit, TextIndex, UpsertStats
from obsidx.indexer.vector_store import SimilarityHit, VectorStore, VectorUpsertStats

__all__ = [
    "Embedder",
    "HashEmbedder",
    "IndexReport",
    "OpenAIEmbedder",
    "SimilarityHit",
    "TextHit",
    "TextIndex",
    "TextSpan",
    "UpsertStats",
    "VaultIndexer",
    "VectorStore",
    "VectorUpsertStats",
    "chunk_text",
    "create_embedder",
]
