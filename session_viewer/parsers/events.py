"""Load a session's JSONL event log into a deterministic, stably ordered list."""
from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Iterable

from session_viewer.date_utils import sort_epoch_ms
from session_viewer.observability import record_parser_failure
from session_viewer.session_ids import is_valid_session_id

logger = logging.getLogger("session_viewer.events")

EVENTS_FILENAME = "events.jsonl"
LEGACY_SUFFIX = ".jsonl"
FILE_INDEX_KEY = "_fileIndex"


def resolve_event_log(session_root: Path, session_id: str) -> Path | None:
    """Directory form (``<id>/events.jsonl``) first, then legacy ``<id>.jsonl``."""
    if not is_valid_session_id(session_id):
        return None
    for candidate in (
        session_root / session_id / EVENTS_FILENAME,
        session_root / f"{session_id}{LEGACY_SUFFIX}",
    ):
        if candidate.is_file():
            return candidate
    return None


def parse_event_lines(lines: Iterable[str], source: str = "<events>") -> list[dict[str, Any]]:
    """Parse non-blank lines independently, tagging each event with its file index.

    Malformed lines (invalid JSON or non-object values) are logged and
    dropped; they still consume an index so positions match the source.
    """
    events: list[dict[str, Any]] = []
    dropped = 0
    index = 0
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Error parsing line %s of %s: %s", index + 1, source, exc)
            event = None
        if isinstance(event, dict):
            event[FILE_INDEX_KEY] = index
            events.append(event)
        else:
            dropped += 1
        index += 1
    if dropped:
        record_parser_failure("events")
    return events


def _sort_key(event: dict[str, Any]) -> tuple[int, int]:
    return sort_epoch_ms(event.get("timestamp")), event[FILE_INDEX_KEY]


def order_events(events: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Sort by ``(timestamp_ms, file_index)``; untimed events count as time 0.

    The file index makes the order total, so events sharing a timestamp keep
    their source order.
    """
    return sorted(events, key=_sort_key)


def read_ordered_events(path: Path) -> list[dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            events = parse_event_lines(handle, source=str(path))
    except OSError as exc:
        logger.error("Error reading events from %s: %s", path, exc)
        return []
    return order_events(events)


def load_session_events_sync(session_root: Path, session_id: str) -> list[dict[str, Any]]:
    path = resolve_event_log(session_root, session_id)
    if path is None:
        return []
    return read_ordered_events(path)


async def load_session_events(session_root: Path, session_id: str) -> list[dict[str, Any]]:
    """Ordered events for *session_id*; empty when no log exists."""
    return await asyncio.to_thread(load_session_events_sync, session_root, session_id)
