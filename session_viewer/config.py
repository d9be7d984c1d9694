"""Session Viewer Backend Configuration."""
import os
from pathlib import Path


def _env(name: str, legacy: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None and legacy:
        value = os.getenv(legacy)
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_path(name: str, default: Path, legacy: str | None = None) -> Path:
    value = _env(name, legacy)
    if not value or not value.strip():
        return default
    return Path(value.strip()).expanduser()


# Session storage root (one child per session: directory or legacy .jsonl)
SESSION_DIR = _env_path(
    "SESSION_VIEWER_SESSION_DIR",
    Path.home() / ".copilot" / "session-state",
    legacy="SESSION_DIR",
)

# Session listing
SUMMARY_MAX_CHARS = 200
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
SESSION_CACHE_TTL_SECONDS = _env_int("SESSION_VIEWER_SESSION_CACHE_TTL_SECONDS", 30)
ACTIVE_SESSION_WINDOW_SECONDS = _env_int("SESSION_VIEWER_ACTIVE_SESSION_WINDOW_SECONDS", 10 * 60)
SESSION_WATCHER_ENABLED = _env_bool("SESSION_VIEWER_WATCHER_ENABLED", True)

# Insight generation
INSIGHT_TIMEOUT_SECONDS = _env_int("SESSION_VIEWER_INSIGHT_TIMEOUT_SECONDS", 5 * 60)
INSIGHT_STDERR_LIMIT_BYTES = _env_int("SESSION_VIEWER_INSIGHT_STDERR_LIMIT_BYTES", 64 * 1024)
INSIGHT_COMMAND = os.getenv("SESSION_VIEWER_INSIGHT_COMMAND", "copilot")

# Observability
OTEL_ENABLED = _env_bool("SESSION_VIEWER_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("SESSION_VIEWER_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("SESSION_VIEWER_OTEL_SERVICE_NAME", "session-viewer")
PROM_PORT = _env_int("SESSION_VIEWER_PROM_PORT", 0)

# CORS
FRONTEND_ORIGIN = os.getenv("SESSION_VIEWER_FRONTEND_ORIGIN", "http://localhost:3838")
