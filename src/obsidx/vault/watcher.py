"""Vault file watcher — forwards markdown file events from watchdog."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)


class _VaultEventHandler(FileSystemEventHandler):
    """Handles file system events for .md files in the vault."""

    def __init__(
        self,
        vault_root: Path,
        excluded_folders: Iterable[str],
        on_change: Callable[[Path, str], None],
    ) -> None:
        self.vault_root = vault_root
        self.excluded = set(excluded_folders)
        self.on_change = on_change

    def _should_process(self, path: str | bytes) -> bool:
        p = Path(path.decode() if isinstance(path, bytes) else path)
        if p.suffix != ".md":
            return False
        try:
            rel = p.relative_to(self.vault_root)
        except ValueError:
            return False
        return not any(part in self.excluded for part in rel.parts)

    def _forward(self, path: str | bytes, kind: str) -> None:
        if self._should_process(path):
            p = Path(path.decode() if isinstance(path, bytes) else path)
            logger.debug("Note %s: %s", kind, p)
            self.on_change(p, kind)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, "created")

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, "modified")

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path, "deleted")

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.dest_path, "moved")


class VaultWatcher:
    """Watches a vault root for markdown file changes.

    Usage:
        watcher = VaultWatcher(root, on_change=my_callback)
        watcher.start()  # non-blocking
        ...
        watcher.stop()

    ``on_change`` is called from watchdog's observer thread.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[Path, str], None],
        excluded_folders: Iterable[str] = (),
    ) -> None:
        self.root = root.expanduser().resolve()
        self.handler = _VaultEventHandler(
            vault_root=self.root,
            excluded_folders=excluded_folders,
            on_change=on_change,
        )
        self._observer: Observer | None = None

    def start(self) -> None:
        """Start watching the vault directory (non-blocking)."""
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.root), recursive=True)
        self._observer.start()
        logger.info("Watching vault at %s", self.root)

    def stop(self) -> None:
        """Stop the watcher."""
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Vault watcher stopped")
