"""Parse the flat ``key: value`` workspace descriptor of a directory session."""
from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger("session_viewer.parsers")

_DESCRIPTOR_LINE = re.compile(r"^(\w+):\s*(.+)$")


def parse_workspace_text(text: str) -> dict[str, str]:
    """Single-level parse: nested blocks, lists and comments are ignored.

    Values stay strings; quoting and type coercion are left to callers.
    """
    result: dict[str, str] = {}
    for line in text.splitlines():
        match = _DESCRIPTOR_LINE.match(line)
        if not match:
            continue
        value = match.group(2).strip()
        if value:
            result[match.group(1)] = value
    return result


def parse_workspace_file(path: Path) -> dict[str, str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Error parsing workspace descriptor %s: %s", path, exc)
        return {}
    return parse_workspace_text(text)
