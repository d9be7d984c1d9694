"""Observability helpers."""

from session_viewer.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_scan,
    record_parser_failure,
    record_insight_run,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_scan",
    "record_parser_failure",
    "record_insight_run",
]
