"""Data models for vault notes and chunks."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

DEFAULT_COLLECTION = "default"


def note_id(abs_path: Path | str) -> str:
    """Stable identity for a note: SHA-256 of its absolute path, first 16 hex chars."""
    return hashlib.sha256(str(abs_path).encode("utf-8")).hexdigest()[:16]


def content_hash(text: str) -> str:
    """SHA-256 hex digest of text content."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class RawNote(BaseModel):
    """One file as yielded by the vault scanner, before extraction."""

    path: str
    abs_path: Path
    text: str
    mtime: float


class Note(BaseModel):
    """A parsed markdown note.

    ``tags`` and ``links`` are always sorted and deduplicated; ``headings``
    keep document order.
    """

    doc_id: str
    path: str
    collection: str = DEFAULT_COLLECTION
    title: str
    tags: list[str] = Field(default_factory=list)
    headings: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    mtime: float = 0.0

    @field_validator("tags", "links")
    @classmethod
    def sort_unique(cls, v: list[str]) -> list[str]:
        return sorted(set(v))


class NoteChunk(BaseModel):
    """A fixed-window slice of a note body, the unit of vector indexing."""

    note_path: str
    collection: str = DEFAULT_COLLECTION
    chunk_idx: int
    start: int
    end: int
    content: str
    mtime: float = 0.0

    @property
    def chunk_id(self) -> str:
        """Unique identifier for this chunk."""
        return f"{self.note_path}::{self.chunk_idx}"

    @property
    def content_hash(self) -> str:
        return content_hash(self.content)

    def to_chroma_metadata(self, seq: int) -> dict[str, str | int | float]:
        """Convert to ChromaDB-compatible metadata dict."""
        return {
            "note_path": self.note_path,
            "collection": self.collection,
            "chunk_idx": self.chunk_idx,
            "start": self.start,
            "end": self.end,
            "content_hash": self.content_hash,
            "mtime": self.mtime,
            "seq": seq,
        }
