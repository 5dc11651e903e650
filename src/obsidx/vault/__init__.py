"""Vault operations — scanning, note extraction, collections, and watching."""

from obsidx.vault.extractor import extract_note
from obsidx.vault.models import Note, NoteChunk, RawNote
from obsidx.vault.registry import CollectionRegistry
from obsidx.vault.scanner import VaultScanner
from obsidx.vault.watch_handler import DebouncedReindexer, WatchState
from obsidx.vault.watcher import VaultWatcher

__all__ = [
    "CollectionRegistry",
    "DebouncedReindexer",
    "Note",
    "NoteChunk",
    "RawNote",
    "VaultScanner",
    "VaultWatcher",
    "WatchState",
    "extract_note",
]
