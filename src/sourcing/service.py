"""Job-level facade: create, run, retry and recover sourcing jobs."""

import asyncio
import logging
from datetime import datetime, timedelta

from src.core.config import RecoveryConfig, WorkflowConfig
from src.core.errors import RetryRejectedError, WorkflowAlreadyRunningError
from src.core.schemas import JobProgress, JobRecord, JobRequirements, JobStatus, StageLabel
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.context import Capabilities, StageContext
from src.sourcing.recovery import RecoverySummary, recover_stale_jobs
from src.sourcing.resume import build_resume_state
from src.sourcing.state import SourcingState
from src.sourcing.workflow import run_workflow

logger = logging.getLogger(__name__)

RUN_PREFIX = "Workflow failed: "
RETRY_PREFIX = "Retry failed: "


class SourcingService:
    """Owns the runs of sourcing jobs within one process.

    A job id can have at most one run in flight; a second request raises
    ``WorkflowAlreadyRunningError``. Methods that start background runs
    must be called from a running event loop.
    """

    def __init__(
        self,
        store: CheckpointStore,
        capabilities: Capabilities,
        workflow: WorkflowConfig | None = None,
        recovery: RecoveryConfig | None = None,
    ) -> None:
        self._store = store
        self._ctx = StageContext(store=store, capabilities=capabilities, config=workflow or WorkflowConfig())
        self._recovery = recovery or RecoveryConfig()
        self._active: set[str] = set()
        self._tasks: set[asyncio.Task[SourcingState | None]] = set()

    @property
    def store(self) -> CheckpointStore:
        return self._store

    def is_active(self, job_id: str) -> bool:
        return job_id in self._active

    def create_job(
        self,
        *,
        user_id: str,
        raw_job_description: str,
        max_candidates: int,
        title: str = "",
        job_requirements: JobRequirements | None = None,
    ) -> JobRecord:
        return self._store.create_job(
            user_id=user_id,
            raw_job_description=raw_job_description,
            max_candidates=max_candidates,
            title=title,
            job_requirements=job_requirements,
            max_retries=self._recovery.max_retries,
        )

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def _claim(self, job_id: str) -> None:
        if job_id in self._active:
            msg = f"Sourcing job {job_id} is already running"
            raise WorkflowAlreadyRunningError(msg)
        self._active.add(job_id)

    async def _run(self, job_id: str, failure_prefix: str) -> SourcingState | None:
        try:
            plan = build_resume_state(self._store, job_id)
            return await run_workflow(plan.state, self._ctx, start_at=plan.start_at)
        except Exception as e:
            logger.error("Job %s: workflow crashed", job_id, exc_info=True)
            self._store.mark_terminal(job_id, JobStatus.FAILED, error_message=f"{failure_prefix}{e}")
            return None

    async def run_job(self, job_id: str, *, failure_prefix: str = RUN_PREFIX) -> SourcingState | None:
        """Run or resume a job in the calling task.

        Returns the final state, or None if the run crashed (the job is then
        marked FAILED with ``failure_prefix`` before the error text).
        """
        self._store.load(job_id)
        self._claim(job_id)
        try:
            return await self._run(job_id, failure_prefix)
        finally:
            self._active.discard(job_id)

    def launch(self, job_id: str, *, failure_prefix: str = RUN_PREFIX) -> asyncio.Task[SourcingState | None]:
        """Start a job run as a background task."""
        self._claim(job_id)
        task = asyncio.create_task(self._run(job_id, failure_prefix), name=f"sourcing-{job_id}")
        self._tasks.add(task)

        def _done(finished: asyncio.Task[SourcingState | None]) -> None:
            self._active.discard(job_id)
            self._tasks.discard(finished)

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for every background run started by this service."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Retry and recovery
    # ------------------------------------------------------------------

    def retry_job(self, job_id: str) -> asyncio.Task[SourcingState | None]:
        """Reset a failed or paused job and resume it in the background.

        Rejected when the job is running, already completed, or out of
        retries. Resuming a RATE_LIMITED job does not consume a retry.
        """
        job = self._store.load(job_id)
        if self.is_active(job_id):
            msg = f"Sourcing job {job_id} is already running"
            raise WorkflowAlreadyRunningError(msg)
        if job.status is JobStatus.COMPLETED:
            msg = f"Sourcing job {job_id} is already completed"
            raise RetryRejectedError(msg)
        rate_limited = job.status is JobStatus.RATE_LIMITED
        if not rate_limited and job.retry_count >= job.max_retries:
            msg = f"Maximum retries ({job.max_retries}) reached for job {job_id}"
            raise RetryRejectedError(msg)

        self._store.begin_retry(job_id, StageLabel.RETRY_INITIATED, count_attempt=not rate_limited)
        logger.info("Job %s: retry initiated (attempt %d)", job_id, job.retry_count + (0 if rate_limited else 1))
        return self.launch(job_id, failure_prefix=RETRY_PREFIX)

    def recover_stale_jobs(self, now: datetime | None = None) -> RecoverySummary:
        return recover_stale_jobs(
            self._store,
            self.launch,
            stale_after=timedelta(minutes=self._recovery.stale_after_minutes),
            max_retries=self._recovery.max_retries,
            now=now,
            is_active=self.is_active,
        )

    async def run_sweeper(self, stop: asyncio.Event | None = None) -> None:
        """Run recovery sweeps every ``sweep_interval_seconds`` until ``stop`` is set."""
        stop = stop or asyncio.Event()
        interval = self._recovery.sweep_interval_seconds
        logger.info("Recovery sweeper started (every %ds)", interval)
        while not stop.is_set():
            try:
                self.recover_stale_jobs()
            except Exception:
                logger.error("Recovery sweep failed", exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except TimeoutError:
                pass
        logger.info("Recovery sweeper stopped")

    def progress(self, job_id: str, top_n: int = 5) -> JobProgress:
        return self._store.progress(job_id, top_n)
