"""File watcher service using watchfiles.

Monitors the session root and invalidates the session listing cache when
event logs, workspace descriptors or insight reports change.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from watchfiles import Change, awatch

logger = logging.getLogger("session_viewer.watcher")

_WATCHED_SUFFIXES = (".jsonl",)
_WATCHED_NAMES = {"workspace.yaml", "agent-review.md", ".imported"}


def is_relevant_change(change_type: Change, path: Path, root: Path) -> bool:
    """Only changes that alter the session list matter."""
    if path.suffix in _WATCHED_SUFFIXES or path.name in _WATCHED_NAMES:
        return True
    # Session directories appearing or disappearing directly under the root.
    return change_type in (Change.added, Change.deleted) and path.parent == root


class SessionWatcher:
    """Background file watcher that calls ``on_change`` after relevant changes.

    Uses `watchfiles` (Rust-accelerated) for efficient watching.
    """

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False

    async def start(self, session_dir: Path, on_change: Callable[[], None]) -> None:
        """Start watching *session_dir* in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return
        if not session_dir.is_dir():
            logger.warning("Session directory %s does not exist, watcher has nothing to monitor", session_dir)
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(session_dir, on_change))
        logger.info("File watcher started for %s", session_dir)

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    async def _watch_loop(self, session_dir: Path, on_change: Callable[[], None]) -> None:
        root = session_dir.resolve()
        try:
            async for changes in awatch(root, stop_event=self._stop_event):
                if not self._running:
                    break
                relevant = [path for change, path in changes if is_relevant_change(change, Path(path), root)]
                if relevant:
                    logger.info("Detected %s session changes, invalidating cache", len(relevant))
                    on_change()
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False


# Singleton instance
session_watcher = SessionWatcher()
