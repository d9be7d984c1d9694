"""Filesystem-backed session repository.

Every call re-scans the session root; nothing is persisted between scans.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from pathlib import Path

from session_viewer import config
from session_viewer.date_utils import sort_epoch_ms, stat_dates
from session_viewer.models import FAILURE_HEADING, Session, SessionMetadataSnapshot
from session_viewer.observability import record_parser_failure, record_scan, start_span
from session_viewer.parsers.events import EVENTS_FILENAME, LEGACY_SUFFIX
from session_viewer.parsers.line_reader import count_non_blank_lines
from session_viewer.parsers.metadata import extract_session_metadata
from session_viewer.parsers.workspace import parse_workspace_file
from session_viewer.session_ids import is_valid_session_id, should_skip_entry

logger = logging.getLogger("session_viewer.repository")

WORKSPACE_FILENAME = "workspace.yaml"
IMPORTED_MARKER = ".imported"
INSIGHT_REPORT_FILENAME = "agent-review.md"


class SessionRepository:
    """Data access layer for sessions stored under a single root directory."""

    def __init__(
        self,
        session_dir: Path | None = None,
        *,
        active_window_seconds: int = config.ACTIVE_SESSION_WINDOW_SECONDS,
        max_message_chars: int = config.SUMMARY_MAX_CHARS,
    ):
        self.session_dir = Path(session_dir or config.SESSION_DIR)
        self.active_window_seconds = active_window_seconds
        self.max_message_chars = max_message_chars

    async def find_all(self) -> list[Session]:
        """Return every valid session, newest ``updatedAt`` first."""
        started = time.monotonic()
        with start_span("sessions.find_all", {"session_dir": str(self.session_dir)}):
            try:
                entries = await asyncio.to_thread(self._list_entries)
            except OSError as exc:
                logger.error("Error reading sessions from %s: %s", self.session_dir, exc)
                record_scan("error", (time.monotonic() - started) * 1000)
                return []

            results = await asyncio.gather(
                *(asyncio.to_thread(self._build_entry, name) for name in entries),
                return_exceptions=True,
            )

        sessions: list[Session] = []
        for name, result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.warning("Skipping session entry %s: %s", name, result)
                record_parser_failure("session_entry")
                continue
            if result is not None:
                sessions.append(result)

        ordered = self._sort_by_updated_at(sessions)
        record_scan("success", (time.monotonic() - started) * 1000, session_count=len(ordered))
        return ordered

    async def find_by_id(self, session_id: str) -> Session | None:
        """Resolve one session, directory form first, then legacy file form."""
        if not is_valid_session_id(session_id):
            return None
        try:
            return await asyncio.to_thread(self._build_by_id, session_id)
        except OSError as exc:
            logger.warning("Error loading session %s: %s", session_id, exc)
            return None

    # ── Internal helpers ────────────────────────────────────────────

    def _list_entries(self) -> list[str]:
        # Sorted so equal updatedAt values keep a deterministic order.
        return sorted(name for name in os.listdir(self.session_dir) if not should_skip_entry(name))

    def _build_entry(self, name: str) -> Session | None:
        full_path = self.session_dir / name
        stats = full_path.stat()
        if full_path.is_dir():
            session_id = name
            builder = self._create_directory_session
        elif name.endswith(LEGACY_SUFFIX):
            session_id = name[: -len(LEGACY_SUFFIX)]
            builder = self._create_file_session
        else:
            return None
        # Ids that could not be requested back are not listed either.
        if not is_valid_session_id(session_id):
            logger.debug("Ignoring session entry with unsupported name: %s", name)
            return None
        return builder(session_id, full_path, stats)

    def _build_by_id(self, session_id: str) -> Session | None:
        dir_path = self.session_dir / session_id
        if dir_path.is_dir():
            session = self._create_directory_session(session_id, dir_path, dir_path.stat())
            if session is not None:
                return session

        file_path = self.session_dir / f"{session_id}{LEGACY_SUFFIX}"
        if file_path.is_file():
            return self._create_file_session(session_id, file_path, file_path.stat())
        return None

    def _create_directory_session(self, session_id: str, dir_path: Path, stats: os.stat_result) -> Session | None:
        workspace_file = dir_path / WORKSPACE_FILENAME
        if not workspace_file.is_file():
            return None

        workspace = parse_workspace_file(workspace_file)
        events_file = dir_path / EVENTS_FILENAME
        has_events_file = events_file.is_file()

        event_count = 0
        metadata = SessionMetadataSnapshot()
        if has_events_file:
            event_count = count_non_blank_lines(events_file)
            metadata = extract_session_metadata(events_file, self.max_message_chars)

        return Session.from_directory(
            session_id,
            stat_dates(stats),
            workspace,
            event_count,
            metadata,
            is_imported=(dir_path / IMPORTED_MARKER).exists(),
            has_insight=self._has_completed_insight(dir_path / INSIGHT_REPORT_FILENAME),
            session_status=self._session_status(events_file if has_events_file else None),
        )

    def _create_file_session(self, session_id: str, file_path: Path, stats: os.stat_result) -> Session:
        return Session.from_file(
            session_id,
            stat_dates(stats),
            count_non_blank_lines(file_path),
            extract_session_metadata(file_path, self.max_message_chars),
            session_status=self._session_status(file_path),
        )

    @staticmethod
    def _has_completed_insight(report_path: Path) -> bool:
        """A failure report is not a finished insight."""
        try:
            with report_path.open("r", encoding="utf-8", errors="replace") as handle:
                head = handle.read(len(FAILURE_HEADING))
        except OSError:
            return False
        return head != FAILURE_HEADING

    def _session_status(self, events_file: Path | None) -> str:
        """Recently written event logs are treated as sessions still in progress."""
        if events_file is None:
            return "completed"
        try:
            age_seconds = max(0.0, time.time() - events_file.stat().st_mtime)
        except OSError:
            return "completed"
        if age_seconds <= self.active_window_seconds:
            return "wip"
        return "completed"

    @staticmethod
    def _sort_by_updated_at(sessions: list[Session]) -> list[Session]:
        return sorted(sessions, key=lambda s: sort_epoch_ms(s.updatedAt), reverse=True)
