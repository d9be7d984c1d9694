"""Streaming line access for JSONL event logs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

logger = logging.getLogger("session_viewer.parsers")


def iter_lines(path: Path) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, stripped_line)`` for every non-blank line.

    The file is consumed one line at a time; nothing is buffered beyond the
    current line. Undecodable bytes are replaced rather than raised.
    """
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        for line_number, raw in enumerate(handle, start=1):
            line = raw.strip()
            if line:
                yield line_number, line


def count_non_blank_lines(path: Path) -> int:
    """Count event lines; an unreadable or missing file counts as 0."""
    try:
        return sum(1 for _ in iter_lines(path))
    except OSError as exc:
        logger.warning("Error counting lines in %s: %s", path, exc)
        return 0
