"""Generation jobs and the single-worker scheduler that drains them."""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from sticker_engine.core.errors import InvalidTransition, JobNotFoundError, JobRunningError

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStatus(str, Enum):
    """Job status enumeration."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass(frozen=True)
class Preset:
    """One named variation; `content` is appended to the job's base prompt."""
    title: str
    content: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Preset":
        return cls(title=str(data["title"]), content=str(data.get("content", "")))

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "content": self.content}


@dataclass(frozen=True)
class ItemResult:
    """Outcome of one attempted item."""
    index: int
    title: str
    success: bool
    artifact_path: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    def __post_init__(self):
        if self.success != (self.artifact_path is not None):
            raise ValueError("success must be True exactly when artifact_path is set")
        if self.index < 1:
            raise ValueError("index is 1-based")

    @classmethod
    def succeeded(cls, index: int, title: str, artifact_path: Path) -> "ItemResult":
        return cls(index=index, title=title, success=True, artifact_path=str(artifact_path))

    @classmethod
    def failed(cls, index: int, title: str, error: str) -> "ItemResult":
        return cls(index=index, title=title, success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "title": self.title,
            "success": self.success,
            "path": self.artifact_path,
            "filename": Path(self.artifact_path).name if self.artifact_path else None,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class GenerationJob:
    """One batch of sticker generations against a fixed reference-image pair.

    The worker is the only writer while the job runs. Results are append-only
    and frozen once the job reaches a terminal state.
    """
    mother_image_path: str
    anchor_image_path: str
    base_prompt: str
    items: Tuple[Preset, ...]
    id: str = field(default_factory=lambda: f"task_{uuid.uuid4().hex}")
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    current_item_label: str = ""
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    _results: List[ItemResult] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self):
        self.items = tuple(self.items)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def results(self) -> Tuple[ItemResult, ...]:
        return tuple(self._results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self._results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self._results if not r.success)

    # State transitions

    def mark_running(self) -> None:
        if self.status != JobStatus.PENDING:
            raise InvalidTransition(f"{self.id}: {self.status.value} -> running")
        self.status = JobStatus.RUNNING
        self.started_at = _now()

    def set_current_item(self, label: str) -> None:
        self._require_running()
        self.current_item_label = label

    def record(self, result: ItemResult) -> None:
        """Append the result of the next item and advance progress."""
        self._require_running()
        if self.progress >= self.total:
            raise InvalidTransition(f"{self.id}: all {self.total} items already recorded")
        if result.index != self.progress + 1:
            raise InvalidTransition(
                f"{self.id}: expected result #{self.progress + 1}, got #{result.index}"
            )
        self._results.append(result)
        self.progress += 1

    def mark_completed(self) -> None:
        self._require_running()
        self.status = JobStatus.COMPLETED
        self._finish()

    def mark_failed(self, error: str) -> None:
        if self.status.is_terminal:
            raise InvalidTransition(f"{self.id}: {self.status.value} -> failed")
        self.status = JobStatus.FAILED
        self.error = error or "Unknown error"
        self._finish()

    def _finish(self) -> None:
        self.current_item_label = ""
        self.ended_at = _now()

    def _require_running(self) -> None:
        if self.status != JobStatus.RUNNING:
            raise InvalidTransition(f"{self.id}: job is {self.status.value}, not running")

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "success": self.success_count,
            "failed": self.failed_count,
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "total": self.total,
            "currentItem": self.current_item_label,
            "results": [r.to_dict() for r in self._results],
            "error": self.error,
            "createdAt": _iso(self.created_at),
            "startTime": _iso(self.started_at),
            "endTime": _iso(self.ended_at),
        }


@dataclass(frozen=True)
class ProgressEvent:
    """Published by the scheduler whenever a job's observable state changes."""
    job_id: str
    status: JobStatus
    progress: int
    total: int
    current_item: str


class SessionDriver(Protocol):
    async def acquire_session(self) -> Any: ...

    async def close(self, session: Any) -> None: ...


class ItemRunner(Protocol):
    async def run_item(self, session: Any, job: GenerationJob, item_index: int) -> ItemResult: ...


class JobReporter(Protocol):
    def prepare_output_dir(self, job: GenerationJob) -> Path: ...

    def write_report(self, job: GenerationJob) -> Path: ...


@dataclass
class SchedulerState:
    """Process-wide registry of jobs plus the pending queue.

    Built once at startup and injected into the scheduler and the API.
    Memory only: a restart forgets every job.
    """
    jobs: Dict[str, GenerationJob] = field(default_factory=dict)
    pending: Deque[str] = field(default_factory=deque)
    active_job_id: Optional[str] = None
    processing: bool = False

    def counts(self) -> Dict[str, int]:
        stats = {status.value: 0 for status in JobStatus}
        for job in self.jobs.values():
            stats[job.status.value] += 1
        return stats


class JobScheduler:
    """Drains the pending queue one job at a time.

    Only one job holds a remote session at any moment; the remote UI has a
    single active conversation turn.
    """

    def __init__(
        self,
        state: SchedulerState,
        driver: SessionDriver,
        generator: ItemRunner,
        reporter: Optional[JobReporter] = None,
        item_cooldown: float = 0.0,
        max_consecutive_failures: int = 0,
    ):
        self.state = state
        self.driver = driver
        self.generator = generator
        self.reporter = reporter
        self.item_cooldown = item_cooldown
        self.max_consecutive_failures = max_consecutive_failures
        self._listeners: List[Callable[[ProgressEvent], None]] = []
        self._task: Optional[asyncio.Task] = None
        self._session: Any = None
        self._running = False

    # Lifecycle

    async def start(self) -> None:
        """Accept work; picks up anything enqueued before startup."""
        if self._running:
            return
        self._running = True
        self._ensure_worker()
        logger.info("Job scheduler started (%d pending)", len(self.state.pending))

    async def stop(self) -> None:
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Job scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait until the queue has been drained."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    @property
    def is_busy(self) -> bool:
        return self.state.processing

    # Registry operations

    def enqueue(self, job: GenerationJob) -> GenerationJob:
        """Register and queue a job. Never waits on the worker."""
        if job.status != JobStatus.PENDING:
            raise InvalidTransition(f"{job.id}: only pending jobs can be queued")
        self.state.jobs[job.id] = job
        self.state.pending.append(job.id)
        logger.info("Queued job %s (%d items, %d ahead)", job.id, job.total, len(self.state.pending) - 1)
        self._publish(job)
        self._ensure_worker()
        return job

    def get(self, job_id: str) -> GenerationJob:
        job = self.state.jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> List[GenerationJob]:
        return sorted(self.state.jobs.values(), key=lambda j: j.created_at, reverse=True)

    def reset(self, job_id: str) -> GenerationJob:
        """Forget a job. Running jobs cannot be reset."""
        job = self.get(job_id)
        if job.status == JobStatus.RUNNING:
            raise JobRunningError(job_id)
        if job.status == JobStatus.PENDING:
            try:
                self.state.pending.remove(job_id)
            except ValueError:
                pass
        del self.state.jobs[job_id]
        logger.info("Reset job %s (%s)", job_id, job.status.value)
        return job

    # Progress observation

    def add_listener(self, callback: Callable[[ProgressEvent], None]) -> None:
        self._listeners.append(callback)

    def _publish(self, job: GenerationJob) -> None:
        event = ProgressEvent(
            job_id=job.id,
            status=job.status,
            progress=job.progress,
            total=job.total,
            current_item=job.current_item_label,
        )
        for callback in self._listeners:
            try:
                callback(event)
            except Exception as e:
                logger.exception("Progress listener error: %s", e)

    # Worker

    def _ensure_worker(self) -> None:
        if not self._running or self.state.processing:
            return
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(self.run_loop())

    async def run_loop(self) -> None:
        """Process queued jobs until the queue is empty.

        A call made while another invocation is draining returns immediately.
        """
        if self.state.processing:
            return

        self.state.processing = True
        try:
            while self.state.pending:
                job_id = self.state.pending.popleft()
                job = self.state.jobs.get(job_id)
                if job is None or job.status != JobStatus.PENDING:
                    continue

                self.state.active_job_id = job.id
                try:
                    await self._execute_job(job)
                finally:
                    self.state.active_job_id = None
        finally:
            self.state.processing = False

    async def _execute_job(self, job: GenerationJob) -> None:
        job.mark_running()
        self._publish(job)
        logger.info("Starting job %s (%d items)", job.id, job.total)

        error: Optional[str] = None
        try:
            if self.reporter:
                self.reporter.prepare_output_dir(job)

            self._session = await self.driver.acquire_session()
            await self._run_items(job)
        except asyncio.CancelledError:
            job.mark_failed("Scheduler stopped while the job was running")
            raise
        except Exception as e:
            logger.exception("Job %s failed: %s", job.id, e)
            error = str(e) or e.__class__.__name__
        finally:
            await self._release()

        if error is None:
            job.mark_completed()
            logger.info(
                "Job %s completed: %d/%d succeeded", job.id, job.success_count, job.total
            )
        else:
            job.mark_failed(error)

        self._write_report(job)
        self._publish(job)

    async def _run_items(self, job: GenerationJob) -> None:
        consecutive_failures = 0

        for index, preset in enumerate(job.items):
            if self.max_consecutive_failures and consecutive_failures >= self.max_consecutive_failures:
                logger.warning(
                    "Job %s: %d items failed in a row, re-acquiring session",
                    job.id, consecutive_failures,
                )
                await self._release()
                self._session = await self.driver.acquire_session()
                consecutive_failures = 0

            job.set_current_item(preset.title)
            self._publish(job)
            logger.info("Job %s [%d/%d] %s", job.id, index + 1, job.total, preset.title)

            result = await self.generator.run_item(self._session, job, index)
            job.record(result)
            self._publish(job)

            consecutive_failures = 0 if result.success else consecutive_failures + 1

            if self.item_cooldown and index < job.total - 1:
                await asyncio.sleep(self.item_cooldown)

    async def _release(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            await self.driver.close(session)
        except Exception as e:
            logger.warning("Failed to close remote session: %s", e)

    def _write_report(self, job: GenerationJob) -> None:
        if not self.reporter:
            return
        try:
            path = self.reporter.write_report(job)
            logger.info("Report for %s written to %s", job.id, path)
        except OSError as e:
            logger.error("Failed to write report for %s: %s", job.id, e)


def select_presets(presets: Sequence[Preset], indices: Optional[Sequence[int]]) -> List[Preset]:
    """Pick presets by position, keeping library order. Empty/None selects all."""
    if not indices:
        return list(presets)
    wanted = set(indices)
    return [p for i, p in enumerate(presets) if i in wanted]
