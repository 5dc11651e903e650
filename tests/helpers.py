"""Builders shared by the test modules."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from obsidx.vault.models import Note, note_id

if TYPE_CHECKING:
    from pathlib import Path


def write_md(vault: Path, name: str, content: str, mtime: float | None = None) -> Path:
    p = vault / name
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    if mtime is not None:
        os.utime(p, (mtime, mtime))
    return p


def make_note(
    path: str,
    body: str = "",
    mtime: float = 100.0,
    *,
    title: str | None = None,
    collection: str = "default",
    tags: list[str] | None = None,
    links: list[str] | None = None,
) -> Note:
    return Note(
        doc_id=note_id(f"/vault/{path}"),
        path=path,
        collection=collection,
        title=title or path.removesuffix(".md"),
        tags=tags or [],
        links=links or [],
        body=body,
        mtime=mtime,
    )
