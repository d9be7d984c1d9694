"""Pydantic models matching the viewer front-end payloads."""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Session-related models ──────────────────────────────────────────

class SessionKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"


_DEFAULT_SUMMARY = {
    SessionKind.DIRECTORY: "No summary",
    SessionKind.FILE: "Legacy session",
}


class SessionMetadataSnapshot(BaseModel):
    """Result of the single streaming pass over an event log."""

    firstUserMessage: str = ""
    duration: Optional[int] = None  # milliseconds
    copilotVersion: Optional[str] = None
    selectedModel: Optional[str] = None


class Session(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: SessionKind
    workspace: dict[str, str] = Field(default_factory=dict)
    createdAt: str = ""
    updatedAt: str = ""
    summary: str = ""
    hasEvents: bool = False
    eventCount: int = 0
    duration: Optional[int] = None
    isImported: bool = False
    hasInsight: bool = False
    copilotVersion: Optional[str] = None
    selectedModel: Optional[str] = None
    sessionStatus: str = "completed"  # "completed" | "wip"

    @classmethod
    def from_directory(
        cls,
        session_id: str,
        fs_dates: dict[str, str],
        workspace: dict[str, str],
        event_count: int,
        metadata: SessionMetadataSnapshot,
        *,
        is_imported: bool = False,
        has_insight: bool = False,
        session_status: str = "completed",
    ) -> Session:
        """Build a directory session; descriptor values win over filesystem dates."""
        summary = workspace.get("summary") or metadata.firstUserMessage or _DEFAULT_SUMMARY[SessionKind.DIRECTORY]
        return cls(
            id=session_id,
            type=SessionKind.DIRECTORY,
            workspace=dict(workspace),
            createdAt=workspace.get("created_at") or fs_dates.get("createdAt", ""),
            updatedAt=workspace.get("updated_at") or fs_dates.get("updatedAt", ""),
            summary=summary,
            hasEvents=event_count > 0,
            eventCount=event_count,
            duration=metadata.duration,
            isImported=is_imported,
            hasInsight=has_insight,
            copilotVersion=metadata.copilotVersion,
            selectedModel=metadata.selectedModel,
            sessionStatus=session_status,
        )

    @classmethod
    def from_file(
        cls,
        session_id: str,
        fs_dates: dict[str, str],
        event_count: int,
        metadata: SessionMetadataSnapshot,
        *,
        session_status: str = "completed",
    ) -> Session:
        """Build a legacy single-file session (no descriptor, no markers)."""
        return cls(
            id=session_id,
            type=SessionKind.FILE,
            createdAt=fs_dates.get("createdAt", ""),
            updatedAt=fs_dates.get("updatedAt", ""),
            summary=metadata.firstUserMessage or _DEFAULT_SUMMARY[SessionKind.FILE],
            hasEvents=event_count > 0,
            eventCount=event_count,
            duration=metadata.duration,
            copilotVersion=metadata.copilotVersion,
            selectedModel=metadata.selectedModel,
            sessionStatus=session_status,
        )


class SessionMetadata(BaseModel):
    type: SessionKind
    summary: str = ""
    model: Optional[str] = None
    repo: Optional[str] = None
    branch: Optional[str] = None
    cwd: Optional[str] = None
    created: str = ""
    updated: str = ""
    copilotVersion: Optional[str] = None
    sessionStatus: str = "completed"

    @classmethod
    def from_session(cls, session: Session) -> SessionMetadata:
        return cls(
            type=session.type,
            summary=session.summary,
            model=session.selectedModel,
            repo=session.workspace.get("repository"),
            branch=session.workspace.get("branch"),
            cwd=session.workspace.get("cwd"),
            created=session.createdAt,
            updated=session.updatedAt,
            copilotVersion=session.copilotVersion,
            sessionStatus=session.sessionStatus,
        )


class SessionDetail(BaseModel):
    session: Session
    events: list[dict[str, Any]] = Field(default_factory=list)
    metadata: SessionMetadata


class SessionPage(BaseModel):
    sessions: list[Session] = Field(default_factory=list)
    total: int = 0
    offset: int = 0
    limit: int = 0
    hasMore: bool = False


# ── Insight models ──────────────────────────────────────────────────

# First line of a report written when generation failed.
FAILURE_HEADING = "# Generation Failed"

class InsightState(str, Enum):
    NOT_STARTED = "not_started"
    GENERATING = "generating"
    COMPLETED = "completed"
    TIMEOUT = "timeout"
    FAILED = "failed"


class InsightStatus(BaseModel):
    status: InsightState
    report: Optional[str] = None
    log: Optional[str] = None  # live stdout capture while generating
    generatedAt: Optional[str] = None
    startedAt: Optional[str] = None
    lastUpdate: Optional[str] = None
    ageMs: Optional[int] = None


class DeleteInsightResult(BaseModel):
    success: bool = True
    message: Optional[str] = None
