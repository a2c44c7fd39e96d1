"""
Jobs Module

Job queue and status tracker. Requests are validated on submission, then
executed one at a time, in submission order, by a single worker thread.
Each job gets its own scratch directory and output path.
"""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .config import AppConfig
from .context import AuthorArgs, normalize_args
from .events import EventBus, EventPublisher, JobEventPublisher
from .pipeline import RunResult

logger = logging.getLogger(__name__)

Runner = Callable[[AuthorArgs, EventPublisher], RunResult]


class JobStatus(str, Enum):
    """Lifecycle of a job; terminal states are final."""
    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.ERROR)


_TRANSITIONS = {
    JobStatus.QUEUED: {JobStatus.RUNNING},
    JobStatus.RUNNING: {JobStatus.SUCCESS, JobStatus.ERROR},
    JobStatus.SUCCESS: set(),
    JobStatus.ERROR: set(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Job:
    """One authoring request and its status."""
    id: str
    args: AuthorArgs
    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    output: Optional[Path] = None
    error: Optional[str] = None

    @property
    def scratch_dir(self) -> Path:
        return self.args.scratch

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status.value,
            "createdAt": _iso(self.created_at),
            "startedAt": _iso(self.started_at),
            "finishedAt": _iso(self.finished_at),
            "output": str(self.output) if self.output else None,
            "error": self.error,
        }


class JobQueue:
    """
    Single-lane FIFO execution of authoring runs.

    Submissions may come from any thread; only the worker thread moves a
    job past the queued state, so at most one run is ever in progress.
    """

    def __init__(
        self,
        runner: Runner,
        bus: Optional[EventBus] = None,
        config: Optional[AppConfig] = None
    ):
        self.runner = runner
        self.bus = bus or EventBus()
        self.config = config or AppConfig()

        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._pending: queue.Queue = queue.Queue()
        self._worker: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the worker thread if it is not running."""
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._worker = threading.Thread(
                target=self._work, name="discwright-worker", daemon=True
            )
            self._worker.start()

    def submit(self, request: dict) -> Job:
        """
        Validate a request and enqueue it.

        Args:
            request: Request options; "scratch" and "output" are always
                replaced by per-job locations under the configured roots

        Returns:
            The queued Job

        Raises:
            ValidationError: If the request is invalid (no job is created)
        """
        job_id = str(uuid.uuid4())
        options = dict(request)
        options["scratch"] = str(Path(self.config.scratch_root) / job_id)
        options["output"] = str(Path(self.config.output_root) / f"{job_id}.iso")
        options.setdefault("volume_name", self.config.default_volume_name)
        options["job_id"] = job_id

        args = normalize_args(options)
        job = Job(id=job_id, args=args)

        with self._lock:
            self._jobs[job_id] = job
        self._pending.put(job_id)
        logger.info(f"Queued job {job_id}")

        self.start()
        return job

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self) -> list[Job]:
        with self._lock:
            return sorted(self._jobs.values(), key=lambda job: job.created_at)

    def running_count(self) -> int:
        with self._lock:
            return sum(1 for job in self._jobs.values() if job.status == JobStatus.RUNNING)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Job:
        """
        Block until a job reaches a terminal state.

        Raises:
            KeyError: If the job is unknown
            TimeoutError: If the job is still active after timeout seconds
        """
        with self._changed:
            if job_id not in self._jobs:
                raise KeyError(job_id)
            done = self._changed.wait_for(
                lambda: self._jobs[job_id].status.is_terminal, timeout=timeout
            )
            if not done:
                raise TimeoutError(f"Job {job_id} did not finish within {timeout}s")
            return self._jobs[job_id]

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the worker after every queued job has run."""
        worker = self._worker
        if worker is None:
            return
        self._pending.put(None)
        worker.join(timeout)

    def _transition(self, job: Job, status: JobStatus, **changes) -> None:
        with self._changed:
            if status not in _TRANSITIONS[job.status]:
                raise RuntimeError(
                    f"Job {job.id} cannot move from {job.status.value} to {status.value}"
                )
            job.status = status
            for name, value in changes.items():
                setattr(job, name, value)
            self._changed.notify_all()

    def _work(self) -> None:
        while True:
            job_id = self._pending.get()
            if job_id is None:
                break
            try:
                self._run(self._jobs[job_id])
            except Exception as e:
                logger.exception(f"Worker failed while running job {job_id}")
                job = self._jobs[job_id]
                if job.status == JobStatus.RUNNING:
                    self._transition(
                        job, JobStatus.ERROR, finished_at=_now(), error=str(e)
                    )
            finally:
                self._pending.task_done()

    def _run(self, job: Job) -> None:
        publisher = JobEventPublisher(self.bus, job.id)
        self._transition(job, JobStatus.RUNNING, started_at=_now())
        publisher.log(f"Job {job.id} started")

        try:
            result = self.runner(job.args, publisher)
        except Exception as e:
            logger.exception(f"Job {job.id} crashed")
            result = RunResult(success=False, error=str(e))

        if result.success:
            self._transition(
                job, JobStatus.SUCCESS, finished_at=_now(), output=result.disc_image
            )
            publisher.log(f"Job {job.id} finished: {result.disc_image}")
        else:
            self._transition(
                job, JobStatus.ERROR, finished_at=_now(),
                error=result.error or "Unknown error"
            )
            publisher.log(f"Job {job.id} failed: {job.error}", "error")
