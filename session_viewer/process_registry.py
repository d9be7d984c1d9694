"""Registry of spawned child processes so they can be terminated on shutdown."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

logger = logging.getLogger("session_viewer.processes")


@dataclass
class TrackedProcess:
    process: asyncio.subprocess.Process
    name: str
    started_at: float = field(default_factory=time.monotonic)


class ProcessRegistry:
    """Tracks live child processes; ``kill_all`` is called from app shutdown."""

    def __init__(self) -> None:
        self._processes: dict[int, TrackedProcess] = {}
        self.is_shutting_down = False

    def register(self, process: asyncio.subprocess.Process, name: str = "") -> TrackedProcess:
        tracked = TrackedProcess(process=process, name=name or f"pid-{process.pid}")
        self._processes[id(process)] = tracked
        return tracked

    def unregister(self, process: asyncio.subprocess.Process) -> None:
        tracked = self._processes.pop(id(process), None)
        if tracked is None:
            return
        elapsed_ms = int((time.monotonic() - tracked.started_at) * 1000)
        logger.info("Process exited (%s): %sms", tracked.name, elapsed_ms)

    def kill_all(self) -> int:
        """Send SIGTERM to every tracked process still running; returns how many were signalled."""
        self.is_shutting_down = True
        logger.info("Killing %s active processes...", len(self._processes))
        killed = 0
        for tracked in list(self._processes.values()):
            if tracked.process.returncode is not None:
                continue
            try:
                tracked.process.terminate()
                killed += 1
                logger.info("Killed %s", tracked.name)
            except ProcessLookupError:
                logger.debug("Process %s already gone", tracked.name)
            except OSError as exc:
                logger.error("Failed to kill %s: %s", tracked.name, exc)
        self._processes.clear()
        return killed

    def count(self) -> int:
        return len(self._processes)


# Singleton instance
process_registry = ProcessRegistry()
