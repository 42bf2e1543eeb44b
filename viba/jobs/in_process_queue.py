"""In-process job queue using asyncio.

Runs generations strictly one at a time in a background task. The worker
loop is a passive scanner: whenever nothing is processing it picks the
oldest pending job (submission order), so retried jobs re-enter the same
queue. No external dependencies (Redis, Celery) needed.
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from viba.errors import NotFoundError, VibaError
from viba.jobs.dispatcher import JobDispatcher, JobStateError
from viba.jobs.models import JobRecord, JobStatus

logger = logging.getLogger(__name__)


class InProcessQueue(JobDispatcher):
    """Local async job queue. Processes jobs one at a time via asyncio."""

    def __init__(self, worker_fn: Callable[[JobRecord], Awaitable[JobRecord]]):
        """
        worker_fn: async callable(job: JobRecord) -> JobRecord
            Runs the generation and marks the job completed. Any exception
            it raises marks the job failed.
        """
        self._jobs: Dict[str, JobRecord] = {}
        self._worker_fn = worker_fn
        self._wakeup = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def submit(self, job: JobRecord) -> str:
        job.status = JobStatus.PENDING
        self._jobs[job.id] = job
        logger.info("Job %s (%s) queued", job.id, job.type.value)
        self._wakeup.set()
        return job.id

    async def get_status(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    async def list_jobs(self, user_id: Optional[str] = None) -> List[JobRecord]:
        return [j for j in self._jobs.values() if user_id is None or j.user_id == user_id]

    async def retry(self, job_id: str) -> JobRecord:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        if job.status != JobStatus.FAILED:
            raise JobStateError(f"Only failed jobs can be retried (job is {job.status.value})")
        job.reset_for_retry()
        logger.info("Job %s re-queued for retry", job_id)
        self._wakeup.set()
        return job

    async def remove(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        if job.status == JobStatus.PROCESSING:
            raise JobStateError("A processing job cannot be removed")
        del self._jobs[job_id]

    def processing_count(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status == JobStatus.PROCESSING)

    def pending_count(self) -> int:
        return sum(1 for j in self._jobs.values() if j.status == JobStatus.PENDING)

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._worker_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    def _next_pending(self) -> Optional[JobRecord]:
        for job in self._jobs.values():
            if job.status == JobStatus.PENDING:
                return job
        return None

    async def _worker_loop(self) -> None:
        """Process jobs one at a time, oldest pending first."""
        while self._running:
            job = self._next_pending()
            if job is None:
                self._wakeup.clear()
                try:
                    await asyncio.wait_for(self._wakeup.wait(), timeout=1.0)
                except asyncio.TimeoutError:
                    pass
                continue
            await self._process(job)

    async def _process(self, job: JobRecord) -> None:
        job.status = JobStatus.PROCESSING
        job.started_at = datetime.utcnow()
        job.attempts += 1
        logger.info("Job %s processing", job.id)

        try:
            updated_job = await self._worker_fn(job)
            updated_job.status = JobStatus.COMPLETED
            updated_job.status_text = None
            updated_job.completed_at = datetime.utcnow()
            if job.id in self._jobs:
                self._jobs[job.id] = updated_job
            logger.info("Job %s completed", job.id)
        except VibaError as e:
            self._fail(job, e.message)
        except Exception as e:
            logger.exception("Job %s crashed", job.id)
            self._fail(job, f"{type(e).__name__}: {e}")

    def _fail(self, job: JobRecord, message: str) -> None:
        job.status = JobStatus.FAILED
        job.status_text = "Failed"
        job.error = message
        job.completed_at = datetime.utcnow()
        logger.warning("Job %s failed: %s", job.id, message)
