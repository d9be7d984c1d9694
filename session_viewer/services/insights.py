"""Insight report generation for directory sessions.

State lives entirely on disk inside the session directory:

- ``agent-review.md``       finished report (or a failure report)
- ``agent-review.md.lock``  in-flight marker, created with O_EXCL
- ``agent-review.md.tmp``   live stdout capture of the running agent

A lock younger than the timeout means ``generating``; an older one means
``timeout`` and may be reclaimed by the next generate request.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import tempfile
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from session_viewer import config
from session_viewer.date_utils import format_datetime_utc
from session_viewer.models import FAILURE_HEADING, DeleteInsightResult, InsightState, InsightStatus
from session_viewer.observability import record_insight_run, start_span
from session_viewer.parsers.events import EVENTS_FILENAME
from session_viewer.process_registry import ProcessRegistry, process_registry
from session_viewer.services.insight_prompt import build_insight_prompt
from session_viewer.services.report_cleaner import clean_report
from session_viewer.session_ids import require_valid_session_id

logger = logging.getLogger("session_viewer.insights")

REPORT_FILENAME = "agent-review.md"
LOCK_FILENAME = f"{REPORT_FILENAME}.lock"
OUTPUT_FILENAME = f"{REPORT_FILENAME}.tmp"
AGENT_WORK_DIRNAME = ".output"

GENERATING_MESSAGE = "# Generating Copilot Insight...\n\nAnalysis in progress. Please wait."
IN_FLIGHT_MESSAGE = (
    "# Generating Copilot Insight...\n\n"
    "Another request is currently generating this insight. Please wait."
)

# An agent that wrote the report file itself must have produced more than this.
_MIN_DIRECT_REPORT_CHARS = 50
_PIPE_CHUNK_BYTES = 64 * 1024


class InsightSourceMissingError(FileNotFoundError):
    """The session has no event log to analyse."""


class InsightLockError(RuntimeError):
    """The generation lock could not be acquired or reclaimed."""


@dataclass
class _InsightPaths:
    session_dir: Path

    @property
    def report(self) -> Path:
        return self.session_dir / REPORT_FILENAME

    @property
    def lock(self) -> Path:
        return self.session_dir / LOCK_FILENAME

    @property
    def output(self) -> Path:
        return self.session_dir / OUTPUT_FILENAME

    @property
    def events(self) -> Path:
        return self.session_dir / EVENTS_FILENAME

    @property
    def agent_work_dir(self) -> Path:
        return self.session_dir / AGENT_WORK_DIRNAME


@dataclass
class _InsightJob:
    session_id: str
    job_id: str
    paths: _InsightPaths


def _iso_mtime(path: Path) -> str:
    return format_datetime_utc(datetime.fromtimestamp(path.stat().st_mtime, timezone.utc))


def _now_iso() -> str:
    return format_datetime_utc(datetime.now(timezone.utc))


def failure_report(details: str) -> str:
    return f"{FAILURE_HEADING}\n\n```\n{details}\n```\n"


class InsightJobManager:
    """Single-flight insight generation, one external agent process per session."""

    def __init__(
        self,
        session_dir: Path | None = None,
        *,
        command: str | None = None,
        timeout_seconds: int = config.INSIGHT_TIMEOUT_SECONDS,
        stderr_limit_bytes: int = config.INSIGHT_STDERR_LIMIT_BYTES,
        registry: ProcessRegistry | None = None,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.session_dir = Path(session_dir or config.SESSION_DIR)
        self.command = command or config.INSIGHT_COMMAND
        self.timeout_seconds = timeout_seconds
        self.stderr_limit_bytes = stderr_limit_bytes
        self.registry = registry if registry is not None else process_registry
        self.on_change = on_change
        self._tasks: set[asyncio.Task] = set()

    # ── Public API ──────────────────────────────────────────────────

    async def generate_insight(self, session_id: str, force: bool = False) -> InsightStatus:
        """Return the finished report, or make sure exactly one generation is running."""
        paths = self._paths(session_id)
        if not await asyncio.to_thread(paths.session_dir.is_dir):
            raise InsightSourceMissingError(f"Session not found: {session_id}")

        if not force:
            existing = await asyncio.to_thread(self._read_report, paths)
            if existing is not None:
                return existing

        job = _InsightJob(session_id=session_id, job_id=uuid.uuid4().hex, paths=paths)
        in_flight = await asyncio.to_thread(self._acquire_lock, job)
        if in_flight is not None:
            return in_flight

        if not await asyncio.to_thread(paths.events.is_file):
            await asyncio.to_thread(self._release_lock, job)
            raise InsightSourceMissingError("Events file not found")

        if force:
            await asyncio.to_thread(paths.report.unlink, missing_ok=True)
            self._notify_change()

        task = asyncio.create_task(self._run_job(job), name=f"insight-{session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        return InsightStatus(
            status=InsightState.GENERATING,
            report=GENERATING_MESSAGE,
            startedAt=_now_iso(),
        )

    async def get_insight_status(self, session_id: str) -> InsightStatus:
        """Read-only view of the on-disk job state; never starts anything."""
        paths = self._paths(session_id)
        report = await asyncio.to_thread(self._read_report, paths)
        if report is not None:
            return report
        status = await asyncio.to_thread(self._lock_status, paths)
        return status or InsightStatus(status=InsightState.NOT_STARTED)

    async def delete_insight(self, session_id: str) -> DeleteInsightResult:
        paths = self._paths(session_id)
        try:
            await asyncio.to_thread(paths.report.unlink)
        except FileNotFoundError:
            return DeleteInsightResult(success=True, message="Insight file not found")
        self._notify_change()
        return DeleteInsightResult(success=True)

    async def wait_for_pending(self) -> None:
        """Await every background generation started by this manager."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    # ── Lock handling ───────────────────────────────────────────────

    def _paths(self, session_id: str) -> _InsightPaths:
        return _InsightPaths(self.session_dir / require_valid_session_id(session_id))

    def _create_lock(self, job: _InsightJob) -> None:
        """Exclusive create; raises FileExistsError when another job holds the lock."""
        payload = json.dumps({
            "sessionId": job.session_id,
            "jobId": job.job_id,
            "startTime": _now_iso(),
            "pid": os.getpid(),
        })
        fd = os.open(job.paths.lock, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)

    def _acquire_lock(self, job: _InsightJob) -> InsightStatus | None:
        """Take the lock for *job*; returns a status instead when someone else holds it."""
        try:
            self._create_lock(job)
            return None
        except FileExistsError:
            pass

        try:
            observed = job.paths.lock.stat()
        except FileNotFoundError:
            observed = None

        if observed is not None:
            status = self._lock_status(job.paths, observed)
            if status is not None and status.status == InsightState.GENERATING:
                return status
            logger.warning(
                "Removing stale insight lock for %s (%ss old)",
                job.session_id,
                ((status.ageMs if status else 0) or 0) // 1000,
            )
            if not self._discard_stale_lock(job, observed):
                return self._in_flight_status(job.paths)

        try:
            self._create_lock(job)
        except FileExistsError:
            # Another request reclaimed the stale lock first.
            return self._in_flight_status(job.paths)
        except OSError as exc:
            raise InsightLockError("Failed to acquire lock for insight generation") from exc
        return None

    def _discard_stale_lock(self, job: _InsightJob, observed: os.stat_result) -> bool:
        """Remove the lock only if it is still the stale file seen as *observed*.

        The lock is first renamed to a tombstone private to *job*, so a fresh
        lock written by a concurrent reclaimer is never deleted. Returns False
        when the lock turned out to belong to another live job.
        """
        tombstone = job.paths.lock.with_name(f"{LOCK_FILENAME}.{job.job_id}.stale")
        try:
            os.rename(job.paths.lock, tombstone)
        except FileNotFoundError:
            return True
        except OSError as exc:
            raise InsightLockError("Failed to acquire lock for insight generation") from exc

        try:
            moved = tombstone.stat()
            if (moved.st_ino, moved.st_mtime_ns) == (observed.st_ino, observed.st_mtime_ns):
                return True
            # A newer job took the lock in between; hand it back without clobbering.
            try:
                os.link(tombstone, job.paths.lock)
            except FileExistsError:
                logger.warning("Insight lock for %s was replaced twice during reclaim", job.session_id)
            return False
        finally:
            tombstone.unlink(missing_ok=True)

    def _in_flight_status(self, paths: _InsightPaths) -> InsightStatus:
        status = self._lock_status(paths)
        if status is None or status.status != InsightState.GENERATING:
            return InsightStatus(status=InsightState.GENERATING, report=IN_FLIGHT_MESSAGE)
        return status

    def _release_lock(self, job: _InsightJob) -> None:
        """Remove the lock only if it still belongs to *job*."""
        try:
            owner = json.loads(job.paths.lock.read_text(encoding="utf-8")).get("jobId")
        except FileNotFoundError:
            return
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Unreadable insight lock for %s: %s", job.session_id, exc)
            owner = None
        if owner not in (None, job.job_id):
            logger.info("Insight lock for %s now belongs to another job; leaving it", job.session_id)
            return
        job.paths.lock.unlink(missing_ok=True)

    def _lock_status(self, paths: _InsightPaths, stats: os.stat_result | None = None) -> InsightStatus | None:
        if stats is None:
            try:
                stats = paths.lock.stat()
            except FileNotFoundError:
                return None

        age_ms = max(0, int((time.time() - stats.st_mtime) * 1000))
        started_at = format_datetime_utc(datetime.fromtimestamp(stats.st_mtime, timezone.utc))
        try:
            lock_data = json.loads(paths.lock.read_text(encoding="utf-8"))
            started_at = str(lock_data.get("startTime") or started_at)
        except (OSError, ValueError, AttributeError):
            pass

        log = None
        last_update = format_datetime_utc(datetime.fromtimestamp(stats.st_mtime, timezone.utc))
        try:
            log = paths.output.read_text(encoding="utf-8", errors="replace")
            last_update = _iso_mtime(paths.output)
        except FileNotFoundError:
            pass

        if age_ms >= self.timeout_seconds * 1000:
            return InsightStatus(
                status=InsightState.TIMEOUT,
                log=log,
                startedAt=started_at,
                lastUpdate=last_update,
                ageMs=age_ms,
            )
        return InsightStatus(
            status=InsightState.GENERATING,
            report=IN_FLIGHT_MESSAGE,
            log=log,
            startedAt=started_at,
            lastUpdate=last_update,
            ageMs=age_ms,
        )

    def _read_report(self, paths: _InsightPaths) -> InsightStatus | None:
        try:
            report = paths.report.read_text(encoding="utf-8")
            generated_at = _iso_mtime(paths.report)
        except FileNotFoundError:
            return None
        state = InsightState.FAILED if report.startswith(FAILURE_HEADING) else InsightState.COMPLETED
        return InsightStatus(status=state, report=report, generatedAt=generated_at)

    # ── Background generation ───────────────────────────────────────

    async def _run_job(self, job: _InsightJob) -> None:
        started = time.monotonic()
        tmp_dir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix=f"agent-review-{job.session_id}-"))
        result = "error"
        try:
            with start_span("insights.generate", {"session_id": job.session_id}):
                result = await self._generate(job, tmp_dir)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error finalizing insight for session %s", job.session_id)
            await asyncio.to_thread(self._write_failure_report, job, str(exc) or type(exc).__name__)
        finally:
            await asyncio.to_thread(self._cleanup_job, job, tmp_dir)
            record_insight_run(result, (time.monotonic() - started) * 1000)
            self._notify_change()

    async def _generate(self, job: _InsightJob, tmp_dir: Path) -> str:
        prompt = build_insight_prompt(job.paths.report, job.paths.agent_work_dir)
        args = [self.command, "--config-dir", str(tmp_dir), "--yolo", "-p", prompt]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(job.paths.session_dir),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("Failed to spawn %s: %s", self.command, exc)
            await asyncio.to_thread(self._write_failure_report, job, str(exc))
            return "spawn_error"

        self.registry.register(process, name=f"insight-{job.session_id}")
        try:
            _, _, stderr = await asyncio.gather(
                self._pipe_events(process, job.paths.events),
                self._drain_stdout(process, job.paths.output),
                self._drain_stderr(process),
            )
            code = await process.wait()
        finally:
            self.registry.unregister(process)

        if code != 0:
            details = stderr.decode("utf-8", errors="replace")
            logger.error("Insight agent failed for %s (exit %s): %s", job.session_id, code, details)
            await asyncio.to_thread(self._write_failure_report, job, details)
            return "failed"

        await asyncio.to_thread(self._finalize_report, job)
        return "completed"

    def _finalize_report(self, job: _InsightJob) -> None:
        if self._has_direct_report(job.paths.report):
            logger.info("Insight generated for session %s (agent wrote directly)", job.session_id)
            return
        raw = job.paths.output.read_text(encoding="utf-8", errors="replace") if job.paths.output.exists() else ""
        job.paths.report.write_text(clean_report(raw), encoding="utf-8")
        logger.info("Insight generated for session %s (cleaned from stdout)", job.session_id)

    @staticmethod
    def _write_failure_report(job: _InsightJob, details: str) -> None:
        try:
            job.paths.report.write_text(failure_report(details), encoding="utf-8")
        except OSError as exc:
            logger.error("Could not write failure report for %s: %s", job.session_id, exc)

    def _cleanup_job(self, job: _InsightJob, tmp_dir: Path) -> None:
        job.paths.output.unlink(missing_ok=True)
        self._release_lock(job)
        shutil.rmtree(tmp_dir, ignore_errors=True)
        shutil.rmtree(job.paths.agent_work_dir, ignore_errors=True)

    @staticmethod
    def _has_direct_report(report_path: Path) -> bool:
        try:
            return len(report_path.read_text(encoding="utf-8").strip()) > _MIN_DIRECT_REPORT_CHARS
        except FileNotFoundError:
            return False

    async def _pipe_events(self, process: asyncio.subprocess.Process, events_path: Path) -> None:
        stdin = process.stdin
        assert stdin is not None
        handle: BinaryIO | None = None
        try:
            handle = await asyncio.to_thread(events_path.open, "rb")
            while True:
                chunk = await asyncio.to_thread(handle.read, _PIPE_CHUNK_BYTES)
                if not chunk:
                    break
                stdin.write(chunk)
                await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # The agent exited before consuming all of its input.
            logger.debug("Insight agent closed stdin early")
        finally:
            if handle is not None:
                await asyncio.to_thread(handle.close)
            stdin.close()
            try:
                await stdin.wait_closed()
            except (BrokenPipeError, ConnectionResetError):
                pass

    async def _drain_stdout(self, process: asyncio.subprocess.Process, output_path: Path) -> None:
        stdout = process.stdout
        assert stdout is not None
        sink = await asyncio.to_thread(output_path.open, "wb")
        try:
            while True:
                chunk = await stdout.read(_PIPE_CHUNK_BYTES)
                if not chunk:
                    break
                await asyncio.to_thread(self._append_chunk, sink, chunk)
        finally:
            await asyncio.to_thread(sink.close)

    @staticmethod
    def _append_chunk(sink: BinaryIO, chunk: bytes) -> None:
        sink.write(chunk)
        sink.flush()

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> bytes:
        """Keep at most ``stderr_limit_bytes``; the rest is read and discarded."""
        stderr = process.stderr
        assert stderr is not None
        captured = bytearray()
        while True:
            chunk = await stderr.read(_PIPE_CHUNK_BYTES)
            if not chunk:
                break
            remaining = self.stderr_limit_bytes - len(captured)
            if remaining > 0:
                captured.extend(chunk[:remaining])
        return bytes(captured)

    def _notify_change(self) -> None:
        if self.on_change is not None:
            self.on_change()
