"""
In-memory background job processor.

Jobs are queued with ``add_job`` and run one at a time, in creation order, by
a single drain task. Handlers are registered per job type by the code that
owns the work; the processor itself knows nothing about what a job does.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from anitrack.core.logging_config import clear_job_id, set_job_id
from anitrack.workers.schemas import BackgroundJob, JobStatus

logger = logging.getLogger(__name__)

JobHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


class JobQueueClosedError(Exception):
    """Raised when a job is added after the processor has been stopped."""

    pass


class BackgroundJobProcessor:
    def __init__(self):
        self.handlers: Dict[str, JobHandler] = {}
        self.jobs: Dict[str, BackgroundJob] = {}
        self.processing_task: Optional[asyncio.Task] = None
        self.closed = False

    @property
    def is_processing(self) -> bool:
        return self.processing_task is not None and not self.processing_task.done()

    def register(self, job_type: str, handler: JobHandler):
        """Route jobs of *job_type* to *handler*, replacing any earlier handler."""
        self.handlers[job_type] = handler
        logger.debug(f"Registered background job handler: {job_type}")

    async def add_job(self, job_type: str, data: Optional[Dict[str, Any]] = None) -> str:
        """
        Queue a job and make sure a drain is running.

        Args:
            job_type: Name a handler was registered under
            data: Payload handed to the handler

        Returns:
            The new job's id

        Raises:
            JobQueueClosedError: If the processor has been stopped
        """
        if self.closed:
            raise JobQueueClosedError(f"Cannot add job {job_type}: processor is stopped")

        job_id = f"job_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        job = BackgroundJob(
            id=job_id,
            type=job_type,
            data=data or {},
            created_at=datetime.now(timezone.utc),
        )
        self.jobs[job_id] = job
        logger.info(f"Background job added: {job_type} (job_id={job_id})")

        if not self.is_processing:
            self.processing_task = asyncio.create_task(self._process_jobs())

        return job_id

    async def _process_jobs(self):
        logger.info("Starting background job processing")

        while True:
            pending = [job for job in self.jobs.values() if job.status == JobStatus.PENDING]
            if not pending:
                break

            for job in pending:
                await self._process_job(job)

        logger.info("Background job processing finished")

    async def _process_job(self, job: BackgroundJob):
        set_job_id(job.id)
        try:
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now(timezone.utc)
            logger.info(f"Processing job: {job.type}")

            handler = self.handlers.get(job.type)
            if handler is None:
                raise ValueError(f"Unknown job type: {job.type}")

            job.result = await handler(job.data)
            job.status = JobStatus.COMPLETED
            logger.info(f"Job completed: {job.type}")

        except asyncio.CancelledError:
            job.status = JobStatus.FAILED
            job.error = "Job cancelled"
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            logger.error(f"Job failed: {job.type}: {job.error}")
        finally:
            job.completed_at = datetime.now(timezone.utc)
            clear_job_id()

    def get_job_status(self, job_id: str) -> Optional[BackgroundJob]:
        return self.jobs.get(job_id)

    def get_all_jobs(self) -> List[BackgroundJob]:
        return list(self.jobs.values())

    def clear_completed_jobs(self) -> int:
        """Forget jobs that completed or failed; returns how many were removed."""
        finished = [job_id for job_id, job in self.jobs.items() if job.is_finished]
        for job_id in finished:
            del self.jobs[job_id]
        return len(finished)

    async def join(self):
        """Wait for the current drain, if any, to finish."""
        if self.processing_task is not None:
            await self.processing_task

    async def stop(self):
        """Refuse new jobs and let queued ones finish."""
        if self.closed:
            return

        self.closed = True
        await self.join()
        logger.info("Background job processor stopped")
