"""Debounced reindex loop — turns a stream of file events into reindex cycles.

The loop is a three-state machine:

* **IDLE** — waiting for the first event.
* **DEBOUNCING** — a fixed window of ``debounce_ms`` runs from that first
  event. Events arriving inside the window are drained and dropped; they do
  not extend or restart it.
* **REINDEXING** — exactly one incremental reindex cycle runs (in a worker
  thread). Whatever happens, the loop goes back to IDLE afterwards.

Events that arrive while a cycle is running stay queued and start the next
window, so cycles never overlap and no change is lost. A failing cycle is
logged and the loop carries on; only cancellation stops it.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from obsidx.config import WatchConfig

logger = logging.getLogger(__name__)


class WatchState(StrEnum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    REINDEXING = "reindexing"


class DebouncedReindexer:
    """Single consumer of file events; runs ``reindex`` once per debounce window.

    Parameters
    ----------
    config:
        Watch settings (``debounce_ms``).
    reindex:
        Blocking callable that performs one incremental reindex of the whole
        watched root. Called via ``asyncio.to_thread``.
    """

    def __init__(self, config: WatchConfig, reindex: Callable[[], object]) -> None:
        self._config = config
        self._reindex = reindex
        self._queue: asyncio.Queue[tuple[Path, str]] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self.state = WatchState.IDLE
        self.cycles = 0
        self.failures = 0

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def handle_change(self, path: Path, event_type: str) -> None:
        """Entry point for ``VaultWatcher`` (called from the observer thread)."""
        if self._loop is None:
            logger.debug("Loop not running yet — dropping %s %s", event_type, path)
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, (path, event_type))

    def submit(self, path: Path, event_type: str = "modified") -> None:
        """Enqueue an event from inside the running loop."""
        self._queue.put_nowait((path, event_type))

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Consumer loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Consume events forever; returns only by cancellation."""
        self._loop = asyncio.get_running_loop()
        debounce_s = self._config.debounce_ms / 1000.0

        while True:
            self.state = WatchState.IDLE
            path, event_type = await self._queue.get()

            self.state = WatchState.DEBOUNCING
            logger.debug(
                "Change detected (%s %s) — debouncing %dms",
                event_type,
                path,
                self._config.debounce_ms,
            )
            absorbed = await self._drain_until(self._loop.time() + debounce_s)

            self.state = WatchState.REINDEXING
            logger.info("Reindexing after %d change event(s)", absorbed + 1)
            try:
                await asyncio.to_thread(self._reindex)
            except Exception:
                self.failures += 1
                logger.exception("Reindex cycle failed — watcher keeps running")
            finally:
                self.cycles += 1
                self.state = WatchState.IDLE

    async def _drain_until(self, deadline: float) -> int:
        """Swallow events until *deadline*; returns how many were absorbed."""
        assert self._loop is not None
        absorbed = 0
        while True:
            remaining = deadline - self._loop.time()
            if remaining <= 0:
                return absorbed
            try:
                await asyncio.wait_for(self._queue.get(), timeout=remaining)
            except TimeoutError:
                return absorbed
            absorbed += 1
