"""Index pipeline — scan a vault, extract notes, upsert into both stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from obsidx.indexer.text_index import UpsertStats
from obsidx.indexer.vector_store import VectorUpsertStats
from obsidx.vault.extractor import extract_note
from obsidx.vault.models import DEFAULT_COLLECTION, Note
from obsidx.vault.scanner import VaultScanner

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from obsidx.config import ChunkConfig
    from obsidx.indexer.text_index import TextIndex
    from obsidx.indexer.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexReport:
    """Outcome of one pipeline run across both stores."""

    scanned: int = 0
    failed: int = 0
    incremental: bool = True
    text: UpsertStats = field(default_factory=UpsertStats)
    vectors: VectorUpsertStats = field(default_factory=VectorUpsertStats)

    @property
    def changed(self) -> int:
        """Documents inserted or replaced in either store."""
        return self.text.changed + self.vectors.notes_written


class VaultIndexer:
    """Drives scan → extract → upsert for the text index and the vector store.

    Incremental runs never notice files that were removed from the vault;
    only a full run (``incremental=False``) drops them.
    """

    def __init__(
        self,
        text_index: TextIndex,
        vector_store: VectorStore,
        chunking: ChunkConfig,
        excluded_folders: Iterable[str] = (),
    ) -> None:
        self.text_index = text_index
        self.vector_store = vector_store
        self.chunking = chunking
        self.excluded_folders = list(excluded_folders)

    def extract_all(
        self, root: Path, collection: str = DEFAULT_COLLECTION
    ) -> tuple[list[Note], int]:
        """Scan *root* and extract every note. Returns ``(notes, failures)``."""
        scanner = VaultScanner(root, self.excluded_folders)
        notes: list[Note] = []
        failed = 0
        for raw in scanner.iter_files():
            try:
                notes.append(
                    extract_note(
                        raw.path,
                        raw.text,
                        raw.mtime,
                        collection=collection,
                        abs_path=raw.abs_path,
                    )
                )
            except Exception:
                failed += 1
                logger.exception("Failed to extract %s", raw.path)
        logger.info("Extracted %d notes from %s", len(notes), scanner.root)
        return notes, failed

    def run(
        self,
        root: Path,
        collection: str = DEFAULT_COLLECTION,
        incremental: bool = True,
    ) -> IndexReport:
        """Index *root* into both stores and report what changed."""
        notes, failed = self.extract_all(root, collection)
        report = IndexReport(scanned=len(notes) + failed, failed=failed, incremental=incremental)
        report.text = self.text_index.upsert_batch(notes, incremental=incremental)
        report.vectors = self.vector_store.upsert_notes(notes, self.chunking, incremental=incremental)
        return report
