"""Vector store — ChromaDB-backed chunk storage with an mtime-gated upsert.

Chunks and their embeddings live in a ChromaDB collection. A small SQLite
side table next to it records path → mtime for the incremental gate, plus a
sequence counter that gives every chunk a stable storage order.
Similarity is scored here with numpy rather than through Chroma's ANN query,
so ties and degenerate vectors are handled the same way on every backend.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import chromadb
import numpy as np
from chromadb.config import Settings as ChromaSettings

from obsidx.errors import StoreUnavailableError
from obsidx.indexer.chunker import chunk_text
from obsidx.indexer.embedder import l2_normalize
from obsidx.vault.models import NoteChunk

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from obsidx.config import ChunkConfig
    from obsidx.indexer.embedder import Embedder
    from obsidx.vault.models import Note

logger = logging.getLogger(__name__)

VECTOR_DIRNAME = "vectors"
MTIME_TABLE_FILENAME = "note_mtimes.sqlite"
CHUNK_COLLECTION = "note_chunks"

_SIDE_SCHEMA = """\
CREATE TABLE IF NOT EXISTS note_mtimes (
    path TEXT PRIMARY KEY,
    mtime REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


@dataclass(frozen=True, slots=True)
class SimilarityHit:
    """One chunk ranked by cosine similarity to a query."""

    path: str
    chunk: NoteChunk
    score: float


@dataclass(slots=True)
class VectorUpsertStats:
    notes_written: int = 0
    notes_skipped: int = 0
    chunks_written: int = 0


def cosine_similarity(query: np.ndarray, vector: np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0.0 for zero or mismatched vectors."""
    if query.shape != vector.shape:
        return 0.0
    q_norm = float(np.linalg.norm(query))
    v_norm = float(np.linalg.norm(vector))
    if q_norm == 0.0 or v_norm == 0.0:
        return 0.0
    return float(np.dot(query, vector) / (q_norm * v_norm))


class VectorStore:
    """Chunked, embedded note content with similarity queries."""

    def __init__(
        self,
        location: Path,
        embedder: Embedder,
        client: Any,
        side_conn: sqlite3.Connection,
    ) -> None:
        self.location = location
        self.embedder = embedder
        self._client = client
        self._side = side_conn
        self._collection = self._client.get_or_create_collection(
            name=CHUNK_COLLECTION,
            metadata={"hnsw:space": "cosine"},
        )

    @classmethod
    def open(cls, location: Path, embedder: Embedder) -> VectorStore:
        """Open the store under ``<location>/vectors``, creating it if needed."""
        store_dir = location / VECTOR_DIRNAME
        try:
            store_dir.mkdir(parents=True, exist_ok=True)
            side_conn = sqlite3.connect(
                str(store_dir / MTIME_TABLE_FILENAME), check_same_thread=False
            )
            side_conn.executescript(_SIDE_SCHEMA)
            side_conn.commit()
        except OSError as exc:
            raise StoreUnavailableError(store_dir, str(exc)) from exc
        except sqlite3.DatabaseError as exc:
            raise StoreUnavailableError(store_dir, f"malformed mtime table: {exc}") from exc

        try:
            client = chromadb.PersistentClient(
                path=str(store_dir),
                settings=ChromaSettings(anonymized_telemetry=False),
            )
            store = cls(location, embedder, client, side_conn)
        except Exception as exc:
            side_conn.close()
            raise StoreUnavailableError(store_dir, f"cannot open chunk store: {exc}") from exc

        logger.info(
            "Chunk store '%s' loaded at %s (%d chunks)",
            CHUNK_COLLECTION,
            store_dir,
            store.count,
        )
        return store

    def close(self) -> None:
        self._side.close()

    def __enter__(self) -> VectorStore:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Side table
    # ------------------------------------------------------------------

    def stored_mtime(self, path: str) -> float | None:
        row = self._side.execute("SELECT mtime FROM note_mtimes WHERE path = ?", (path,)).fetchone()
        return row[0] if row is not None else None

    def _next_seq(self, n: int) -> int:
        """Reserve *n* sequence numbers; returns the first."""
        row = self._side.execute("SELECT value FROM counters WHERE name = 'chunk_seq'").fetchone()
        first = row[0] if row is not None else 0
        self._side.execute(
            "INSERT OR REPLACE INTO counters (name, value) VALUES ('chunk_seq', ?)",
            (first + n,),
        )
        return first

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def clear(self) -> None:
        """Drop every chunk and forget every recorded mtime."""
        self._client.delete_collection(CHUNK_COLLECTION)
        self._collection = self._client.get_or_create_collection(
            name=CHUNK_COLLECTION,
            metadata={"hnsw:space": "cosine"},
        )
        with self._side:
            self._side.execute("DELETE FROM note_mtimes")
        logger.debug("Chunk store cleared")

    def delete_note(self, note_path: str) -> None:
        """Remove all chunks for a given note path."""
        existing = self._collection.get(where={"note_path": note_path}, include=["metadatas"])
        if existing["ids"]:
            self._collection.delete(ids=existing["ids"])
            logger.debug("Deleted %d chunks for %s", len(existing["ids"]), note_path)

    def upsert_note(
        self, note: Note, chunking: ChunkConfig, incremental: bool = True
    ) -> int | None:
        """Re-chunk and re-embed *note* unless the stored mtime is current.

        Returns the number of chunks written, or ``None`` when the mtime gate
        skipped the note.
        """
        if incremental:
            stored = self.stored_mtime(note.path)
            if stored is not None and stored >= note.mtime:
                return None

        self.delete_note(note.path)

        spans = chunk_text(note.body, chunking.max_chars, chunking.overlap)
        chunks = [
            NoteChunk(
                note_path=note.path,
                collection=note.collection,
                chunk_idx=i,
                start=span.start,
                end=span.end,
                content=span.text,
                mtime=note.mtime,
            )
            for i, span in enumerate(spans)
        ]

        with self._side:
            if chunks:
                texts = [c.content for c in chunks]
                embeddings = [
                    l2_normalize(np.asarray(e, dtype=np.float64)).tolist()
                    for e in self.embedder.embed_many(texts)
                ]
                first_seq = self._next_seq(len(chunks))
                self._collection.upsert(
                    ids=[c.chunk_id for c in chunks],
                    documents=texts,
                    embeddings=embeddings,  # type: ignore[arg-type]
                    metadatas=[c.to_chroma_metadata(first_seq + i) for i, c in enumerate(chunks)],
                )
            self._side.execute(
                "INSERT OR REPLACE INTO note_mtimes (path, mtime) VALUES (?, ?)",
                (note.path, note.mtime),
            )

        logger.debug("Indexed %d chunks for %s", len(chunks), note.path)
        return len(chunks)

    def upsert_notes(
        self,
        notes: Iterable[Note],
        chunking: ChunkConfig,
        incremental: bool = True,
    ) -> VectorUpsertStats:
        """Batch form of :meth:`upsert_note`; full mode clears the store first."""
        if not incremental:
            self.clear()

        stats = VectorUpsertStats()
        for note in notes:
            written = self.upsert_note(note, chunking, incremental=incremental)
            if written is None:
                stats.notes_skipped += 1
                continue
            stats.notes_written += 1
            stats.chunks_written += written

        logger.info(
            "Chunk store: %d notes written (%d chunks), %d skipped",
            stats.notes_written,
            stats.chunks_written,
            stats.notes_skipped,
        )
        return stats

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query_by_similarity(
        self,
        text: str,
        limit: int | None = 20,
        collection: str | None = None,
    ) -> list[SimilarityHit]:
        """Chunks ranked by cosine similarity to *text*, best first.

        ``limit=None`` returns every scored chunk.
        """
        query = np.asarray(self.embedder.embed(text), dtype=np.float64)

        where = {"collection": collection} if collection is not None else None
        result = self._collection.get(
            where=where,
            include=["documents", "metadatas", "embeddings"],
        )

        ids = result["ids"] or []
        documents = result.get("documents")
        metadatas = result.get("metadatas")
        embeddings = result.get("embeddings")
        if embeddings is None:
            embeddings = []

        scored: list[tuple[float, int, SimilarityHit]] = []
        for i in range(len(ids)):
            meta = (metadatas[i] if metadatas is not None else None) or {}
            chunk = NoteChunk(
                note_path=str(meta.get("note_path", "")),
                collection=str(meta.get("collection", "")),
                chunk_idx=int(meta.get("chunk_idx", 0)),
                start=int(meta.get("start", 0)),
                end=int(meta.get("end", 0)),
                content=documents[i] if documents is not None else "",
                mtime=float(meta.get("mtime", 0.0)),
            )
            vector = np.asarray(embeddings[i], dtype=np.float64)
            score = cosine_similarity(query, vector)
            seq = int(meta.get("seq", 0))
            scored.append((score, seq, SimilarityHit(path=chunk.note_path, chunk=chunk, score=score)))

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [hit for _, _, hit in scored[:limit]]

    @property
    def count(self) -> int:
        """Total number of stored chunks."""
        return self._collection.count()

    def chunk_count(self, collection: str | None = None) -> int:
        if collection is None:
            return self.count
        return len(self._collection.get(where={"collection": collection}, include=[])["ids"])

    def note_count(self) -> int:
        row = self._side.execute("SELECT COUNT(*) FROM note_mtimes").fetchone()
        return int(row[0])
