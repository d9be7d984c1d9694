"""API routers for sessions, events and insight reports."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from session_viewer import config
from session_viewer.models import (
    DeleteInsightResult,
    InsightStatus,
    Session,
    SessionDetail,
    SessionPage,
)
from session_viewer.services.insights import InsightJobManager, InsightLockError, InsightSourceMissingError
from session_viewer.services.sessions import SessionService
from session_viewer.session_ids import InvalidSessionIdError, require_valid_session_id

logger = logging.getLogger("session_viewer.api")

sessions_router = APIRouter(prefix="/api/sessions", tags=["sessions"])
insights_router = APIRouter(prefix="/api/sessions", tags=["insights"])


class GenerateInsightRequest(BaseModel):
    force: bool = False


def _get_session_service(request: Request) -> SessionService:
    service = getattr(request.app.state, "session_service", None)
    if not service:
        raise HTTPException(status_code=503, detail="Session service not initialized")
    return service


def _get_insight_manager(request: Request) -> InsightJobManager:
    manager = getattr(request.app.state, "insight_manager", None)
    if not manager:
        raise HTTPException(status_code=503, detail="Insight manager not initialized")
    return manager


def _validated_id(session_id: str) -> str:
    try:
        return require_valid_session_id(session_id)
    except InvalidSessionIdError:
        raise HTTPException(status_code=400, detail="Invalid session ID")


# ── Sessions ────────────────────────────────────────────────────────

@sessions_router.get("", response_model=SessionPage)
async def list_sessions(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(config.DEFAULT_PAGE_SIZE, ge=1, le=config.MAX_PAGE_SIZE),
    q: Optional[str] = Query(None, max_length=200),
):
    """Paginated, optionally filtered session list (newest first)."""
    service = _get_session_service(request)
    try:
        return await service.paginate_sessions(offset=offset, limit=limit, query=q)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@sessions_router.get("/{session_id}", response_model=Session)
async def get_session(request: Request, session_id: str):
    service = _get_session_service(request)
    session = await service.get_session(_validated_id(session_id))
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@sessions_router.get("/{session_id}/events")
async def get_session_events(request: Request, session_id: str) -> list[dict[str, Any]]:
    service = _get_session_service(request)
    return await service.get_session_events(_validated_id(session_id))


@sessions_router.get("/{session_id}/detail", response_model=SessionDetail)
async def get_session_detail(request: Request, session_id: str):
    service = _get_session_service(request)
    detail = await service.get_session_with_events(_validated_id(session_id))
    if detail is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return detail


# ── Insights ────────────────────────────────────────────────────────

@insights_router.post("/{session_id}/insight", response_model=InsightStatus)
async def generate_insight(request: Request, session_id: str, body: Optional[GenerateInsightRequest] = None):
    """Start (or join) insight generation; poll the GET endpoint for progress."""
    manager = _get_insight_manager(request)
    force = bool(body and body.force)
    try:
        return await manager.generate_insight(_validated_id(session_id), force=force)
    except InsightSourceMissingError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except InsightLockError as exc:
        logger.error("Error generating insight for %s: %s", session_id, exc)
        raise HTTPException(status_code=500, detail=str(exc))


@insights_router.get("/{session_id}/insight", response_model=InsightStatus)
async def get_insight_status(request: Request, session_id: str):
    manager = _get_insight_manager(request)
    return await manager.get_insight_status(_validated_id(session_id))


@insights_router.delete("/{session_id}/insight", response_model=DeleteInsightResult)
async def delete_insight(request: Request, session_id: str):
    manager = _get_insight_manager(request)
    return await manager.delete_insight(_validated_id(session_id))
