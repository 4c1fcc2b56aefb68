"""Detect stuck or paused jobs and resume them."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from src.core.schemas import JobRecord, JobStatus, StageLabel
from src.sourcing.checkpoint import CheckpointStore

logger = logging.getLogger(__name__)

AUTO_RECOVERY_PREFIX = "Auto-recovery failed: "

# Non-terminal statuses a job can be stuck in.
RECOVERABLE_STATUSES = (
    JobStatus.CREATED,
    JobStatus.FORMATTING_JD,
    JobStatus.JD_FORMATTED,
    JobStatus.SEARCHING_PROFILES,
    JobStatus.PROFILES_FOUND,
    JobStatus.SCRAPING_PROFILES,
    JobStatus.PARSING_PROFILES,
    JobStatus.SAVING_PROFILES,
    JobStatus.SCORING_PROFILES,
)


class Launcher(Protocol):
    def __call__(self, job_id: str, *, failure_prefix: str) -> Any: ...


@dataclass
class RecoverySummary:
    """Outcome of one recovery sweep, by job id."""

    recovered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    max_retries_reached: list[str] = field(default_factory=list)
    waiting: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def checked(self) -> int:
        return sum(
            len(ids) for ids in (
                self.recovered, self.failed, self.max_retries_reached, self.waiting, self.skipped,
            )
        )


def stuck_message(job: JobRecord) -> str:
    return (
        f"Job stuck - Failed after {job.retry_count} automatic recovery attempts. "
        f"Last stage: {job.current_stage}"
    )


def recover_stale_jobs(
    store: CheckpointStore,
    launch: Launcher,
    *,
    stale_after: timedelta,
    max_retries: int | None = None,
    now: datetime | None = None,
    is_active: Callable[[str], bool] = lambda _job_id: False,
) -> RecoverySummary:
    """Resume jobs that stopped making progress.

    A job in a working status with no checkpoint for ``stale_after`` is
    retried (counting an attempt) until its retry ceiling, then marked
    FAILED. A RATE_LIMITED job is revived, without counting an attempt, only
    once its reset time has passed. ``max_retries`` overrides each job's own
    ceiling.
    """
    now = now or store.now()
    summary = RecoverySummary()
    stale = store.stale_jobs(RECOVERABLE_STATUSES, now - stale_after)
    paused = store.stale_jobs([JobStatus.RATE_LIMITED], now)
    logger.info("Recovery sweep: %d stale jobs, %d rate-limited jobs", len(stale), len(paused))

    for job in paused:
        if is_active(job.id):
            summary.skipped.append(job.id)
            continue
        if job.rate_limit_reset_at is not None and job.rate_limit_reset_at > now:
            logger.debug("Job %s: rate limit resets at %s, waiting", job.id, job.rate_limit_reset_at)
            summary.waiting.append(job.id)
            continue
        _revive(store, launch, job, summary, count_attempt=False)

    for job in stale:
        if is_active(job.id):
            summary.skipped.append(job.id)
            continue
        ceiling = job.max_retries if max_retries is None else max_retries
        if job.retry_count >= ceiling:
            message = stuck_message(job)
            logger.error("Job %s: %s", job.id, message)
            store.mark_terminal(job.id, JobStatus.FAILED, error_message=message)
            summary.max_retries_reached.append(job.id)
            continue
        _revive(store, launch, job, summary, count_attempt=True)

    logger.info(
        "Recovery sweep done: %d recovered, %d failed, %d at max retries, %d waiting",
        len(summary.recovered), len(summary.failed),
        len(summary.max_retries_reached), len(summary.waiting),
    )
    return summary


def _revive(
    store: CheckpointStore,
    launch: Launcher,
    job: JobRecord,
    summary: RecoverySummary,
    *,
    count_attempt: bool,
) -> None:
    try:
        store.begin_retry(job.id, StageLabel.AUTO_RECOVERY, count_attempt=count_attempt)
        launch(job.id, failure_prefix=AUTO_RECOVERY_PREFIX)
    except Exception as e:
        logger.error("Job %s: recovery failed", job.id, exc_info=True)
        store.mark_terminal(job.id, JobStatus.FAILED, error_message=f"{AUTO_RECOVERY_PREFIX}{e}")
        summary.failed.append(job.id)
        return
    logger.info("Job %s: recovered (was %s at %s)", job.id, job.status, job.current_stage)
    summary.recovered.append(job.id)
