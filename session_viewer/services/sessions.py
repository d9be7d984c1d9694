"""Session listing, search, pagination and detail assembly."""
from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Any

from session_viewer import config
from session_viewer.models import Session, SessionDetail, SessionMetadata, SessionPage
from session_viewer.parsers.events import load_session_events
from session_viewer.parsers.metadata import MODEL_CHANGE_TYPE, SESSION_START_TYPE
from session_viewer.repositories.sessions import SessionRepository
from session_viewer.session_ids import is_valid_session_id

logger = logging.getLogger("session_viewer")


def _event_data(event: dict[str, Any] | None) -> dict[str, Any]:
    if not event:
        return {}
    data = event.get("data")
    return data if isinstance(data, dict) else {}


def _first_of_type(events: list[dict[str, Any]], event_type: str) -> dict[str, Any] | None:
    return next((event for event in events if event.get("type") == event_type), None)


def matches_query(session: Session, query: str) -> bool:
    """Case-insensitive substring match over the fields shown in the session list."""
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [
        session.id,
        session.summary,
        session.selectedModel or "",
        session.copilotVersion or "",
        *session.workspace.values(),
    ]
    return any(needle in value.lower() for value in haystack if value)


class SessionService:
    """Public read surface over a session root, with a short-lived listing cache."""

    def __init__(
        self,
        session_dir: Path | None = None,
        *,
        repository: SessionRepository | None = None,
        cache_ttl_seconds: int = config.SESSION_CACHE_TTL_SECONDS,
    ):
        self.session_dir = Path(session_dir or config.SESSION_DIR)
        self.repository = repository or SessionRepository(self.session_dir)
        self.cache_ttl_seconds = cache_ttl_seconds
        self._cache: list[Session] | None = None
        self._cache_expires_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        if self._cache is not None:
            logger.debug("Session list cache invalidated")
        self._cache = None
        self._cache_expires_at = 0.0

    async def list_sessions(self) -> list[Session]:
        if self.cache_ttl_seconds <= 0:
            return await self.repository.find_all()
        async with self._lock:
            now = time.monotonic()
            if self._cache is None or now >= self._cache_expires_at:
                self._cache = await self.repository.find_all()
                self._cache_expires_at = now + self.cache_ttl_seconds
            return list(self._cache)

    async def paginate_sessions(self, offset: int = 0, limit: int = config.DEFAULT_PAGE_SIZE, query: str | None = None) -> SessionPage:
        if offset < 0 or limit < 1 or limit > config.MAX_PAGE_SIZE:
            raise ValueError("Invalid pagination parameters")

        sessions = await self.list_sessions()
        if query:
            sessions = [session for session in sessions if matches_query(session, query)]

        total = len(sessions)
        end = offset + limit
        return SessionPage(
            sessions=sessions[offset:end],
            total=total,
            offset=offset,
            limit=limit,
            hasMore=end < total,
        )

    async def get_session(self, session_id: str) -> Session | None:
        if not is_valid_session_id(session_id):
            return None
        return await self.repository.find_by_id(session_id)

    async def get_session_events(self, session_id: str) -> list[dict[str, Any]]:
        if not is_valid_session_id(session_id):
            return []
        return await load_session_events(self.session_dir, session_id)

    async def get_session_with_events(self, session_id: str) -> SessionDetail | None:
        session = await self.get_session(session_id)
        if session is None:
            return None

        events = await self.get_session_events(session_id)
        metadata = SessionMetadata.from_session(session)

        start_model = _event_data(_first_of_type(events, SESSION_START_TYPE)).get("selectedModel")
        if isinstance(start_model, str) and start_model:
            metadata.model = start_model

        model_change = _first_of_type(events, MODEL_CHANGE_TYPE)
        if model_change is not None:
            change_data = _event_data(model_change)
            changed_model = change_data.get("newModel") or change_data.get("model")
            if isinstance(changed_model, str) and changed_model:
                metadata.model = changed_model

        # Event timestamps are more accurate than descriptor or filesystem dates.
        if events:
            if isinstance(events[0].get("timestamp"), str):
                metadata.created = events[0]["timestamp"]
            if isinstance(events[-1].get("timestamp"), str):
                metadata.updated = events[-1]["timestamp"]

        return SessionDetail(session=session, events=events, metadata=metadata)
