"""Session identifier validation and directory-entry filtering."""
from __future__ import annotations

import re

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_SESSION_ID_LENGTH = 255

_SKIPPED_ENTRIES = {".DS_Store", "Thumbs.db", "desktop.ini"}


class InvalidSessionIdError(ValueError):
    """Raised when a session id cannot safely be used as a path component."""

    def __init__(self, session_id: object):
        super().__init__("Invalid session ID")
        self.session_id = session_id


def is_valid_session_id(session_id: object) -> bool:
    """Session ids become path components, so only a strict token grammar is allowed."""
    return (
        isinstance(session_id, str)
        and len(session_id) <= MAX_SESSION_ID_LENGTH
        and _SESSION_ID_PATTERN.fullmatch(session_id) is not None
    )


def require_valid_session_id(session_id: object) -> str:
    if not is_valid_session_id(session_id):
        raise InvalidSessionIdError(session_id)
    return session_id  # type: ignore[return-value]


def should_skip_entry(name: str) -> bool:
    """Hidden entries and OS artifacts never represent sessions."""
    return not name or name.startswith(".") or name in _SKIPPED_ENTRIES
