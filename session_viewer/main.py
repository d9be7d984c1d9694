"""Session Viewer FastAPI backend: main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from session_viewer import config
from session_viewer.file_watcher import session_watcher
from session_viewer.observability import initialize as initialize_observability, shutdown as shutdown_observability
from session_viewer.process_registry import process_registry
from session_viewer.routers.api import insights_router, sessions_router
from session_viewer.services.insights import InsightJobManager
from session_viewer.services.sessions import SessionService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("session_viewer")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("Session viewer starting up (sessions: %s)", config.SESSION_DIR)
    initialize_observability(app)

    session_service = SessionService(config.SESSION_DIR)
    app.state.session_service = session_service
    app.state.insight_manager = InsightJobManager(
        config.SESSION_DIR,
        registry=process_registry,
        on_change=session_service.invalidate,
    )

    if config.SESSION_WATCHER_ENABLED:
        await session_watcher.start(config.SESSION_DIR, session_service.invalidate)

    yield

    logger.info("Session viewer shutting down")
    await session_watcher.stop()

    # Running agents are terminated; their jobs then release locks and clean up.
    process_registry.kill_all()
    await app.state.insight_manager.wait_for_pending()

    shutdown_observability(app)


app = FastAPI(
    title="Session Viewer API",
    description="Backend API for browsing agent session logs and insight reports",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3838",
        "http://127.0.0.1:3838",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(sessions_router)
app.include_router(insights_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "sessionDir": str(config.SESSION_DIR),
        "watcher": "running" if session_watcher.is_running else "stopped",
        "activeProcesses": process_registry.count(),
    }
