"""Single-pass metadata extraction from a session event log."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from session_viewer import config
from session_viewer.date_utils import parse_timestamp_ms
from session_viewer.models import SessionMetadataSnapshot
from session_viewer.parsers.line_reader import iter_lines

logger = logging.getLogger("session_viewer.parsers")

USER_MESSAGE_TYPE = "user.message"
SESSION_START_TYPE = "session.start"
MODEL_CHANGE_TYPE = "session.model_change"

_MESSAGE_KEYS = ("message", "content", "text")
_MODEL_KEYS = ("selectedModel", "newModel", "model")


def truncate_message(message: str, max_chars: int) -> str:
    if len(message) > max_chars:
        return message[:max_chars] + "..."
    return message


def _payload(event: dict[str, Any]) -> dict[str, Any]:
    data = event.get("data")
    return data if isinstance(data, dict) else {}


def _first_text(data: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def extract_session_metadata(
    path: Path,
    max_message_chars: int = config.SUMMARY_MAX_CHARS,
) -> SessionMetadataSnapshot:
    """Read *path* once, front to back, collecting listing metadata.

    ``duration`` is the distance between the first and the *last-seen*
    timestamp in file order (not the numeric maximum), and is only reported
    when that distance is positive. Version and model are first-wins.
    """
    first_user_message = ""
    first_ts: int | None = None
    last_ts: int | None = None
    copilot_version: str | None = None
    selected_model: str | None = None

    try:
        for line_number, line in iter_lines(path):
            try:
                event = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed line %s in %s", line_number, path)
                continue
            if not isinstance(event, dict):
                continue

            ts = parse_timestamp_ms(event.get("timestamp"))
            if ts is not None:
                if first_ts is None:
                    first_ts = ts
                last_ts = ts

            event_type = event.get("type")
            data = _payload(event)

            if not first_user_message and event_type == USER_MESSAGE_TYPE:
                message = _first_text(data, _MESSAGE_KEYS)
                if message:
                    first_user_message = truncate_message(message, max_message_chars)

            if event_type == SESSION_START_TYPE and copilot_version is None:
                version = data.get("copilotVersion")
                if isinstance(version, str) and version:
                    copilot_version = version

            if selected_model is None and event_type in (SESSION_START_TYPE, MODEL_CHANGE_TYPE):
                selected_model = _first_text(data, _MODEL_KEYS) or None
    except OSError as exc:
        logger.warning("Error reading session metadata from %s: %s", path, exc)
        return SessionMetadataSnapshot()

    duration = None
    if first_ts is not None and last_ts is not None and last_ts > first_ts:
        duration = last_ts - first_ts

    return SessionMetadataSnapshot(
        firstUserMessage=first_user_message,
        duration=duration,
        copilotVersion=copilot_version,
        selectedModel=selected_model,
    )
