"""Vault scanner — walks a vault root and yields raw markdown files."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from obsidx.vault.models import RawNote

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)


class VaultScanner:
    """Yields every ``*.md`` file under a root, recursively.

    Order is unspecified. Unreadable files are logged and skipped so one bad
    file never stops a scan.
    """

    def __init__(self, root: Path, excluded_folders: Iterable[str] = ()) -> None:
        self.root = root.expanduser().resolve()
        self.excluded = set(excluded_folders)

    def is_excluded(self, rel_parts: tuple[str, ...]) -> bool:
        return any(part in self.excluded for part in rel_parts)

    def iter_files(self) -> Iterator[RawNote]:
        for md_file in self.root.rglob("*.md"):
            if not md_file.is_file():
                continue
            rel = md_file.relative_to(self.root)
            if self.is_excluded(rel.parts):
                continue
            try:
                stat = md_file.stat()
                text = md_file.read_text(encoding="utf-8", errors="replace")
            except OSError:
                logger.warning("Cannot read %s — skipping", md_file)
                continue
            yield RawNote(
                path=rel.as_posix(),
                abs_path=md_file,
                text=text,
                mtime=stat.st_mtime,
            )
