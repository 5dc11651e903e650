"""Shared fixtures: on-disk vaults and freshly opened stores."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from obsidx.config import ChunkConfig
from obsidx.indexer.embedder import HashEmbedder
from obsidx.indexer.pipeline import VaultIndexer
from obsidx.indexer.text_index import TextIndex
from obsidx.indexer.vector_store import VectorStore
from obsidx.retrieval.service import VaultSearch

from .helpers import write_md

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    """Two linked notes: ``a.md`` links to ``[[b]]``."""
    root = tmp_path / "vault"
    root.mkdir()
    write_md(root, "a.md", "# A\nlink to [[b]]", mtime=100)
    write_md(root, "b.md", "# B", mtime=100)
    return root


@pytest.fixture
def index_dir(tmp_path: Path) -> Path:
    return tmp_path / "index"


@pytest.fixture
def text_index(index_dir: Path) -> Iterator[TextIndex]:
    index = TextIndex.open(index_dir)
    yield index
    index.close()


@pytest.fixture
def vector_store(index_dir: Path) -> Iterator[VectorStore]:
    store = VectorStore.open(index_dir, HashEmbedder(64))
    yield store
    store.close()


@pytest.fixture
def chunking() -> ChunkConfig:
    return ChunkConfig(max_chars=1500, overlap=200)


@pytest.fixture
def indexer(text_index: TextIndex, vector_store: VectorStore, chunking: ChunkConfig) -> VaultIndexer:
    return VaultIndexer(text_index, vector_store, chunking, excluded_folders=[".obsidian"])


@pytest.fixture
def search(text_index: TextIndex, vector_store: VectorStore) -> VaultSearch:
    return VaultSearch(text_index, vector_store, rrf_k=60)
