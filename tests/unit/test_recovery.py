"""Tests for the stale-job recovery sweep."""

from datetime import timedelta
from unittest.mock import MagicMock

from src.core.errors import RateLimitSignal
from src.core.schemas import JobRecord, JobStatus, StageLabel, StageMarker
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.recovery import (
    AUTO_RECOVERY_PREFIX,
    RecoverySummary,
    recover_stale_jobs,
    stuck_message,
)
from tests.fakes import Clock

STALE_AFTER = timedelta(minutes=10)


def _searching(store: CheckpointStore, job_id: str) -> None:
    store.commit(
        job_id,
        status=JobStatus.SEARCHING_PROFILES,
        current_stage=StageMarker.at(StageLabel.SEARCH_ITERATION, 1),
    )


def _pause(store: CheckpointStore, clock: Clock, job_id: str, hours: int = 1) -> None:
    signal = RateLimitSignal(
        "quota exhausted", provider="salesql", reset_at=clock.now + timedelta(hours=hours),
    )
    store.mark_rate_limited(job_id, signal)


def _sweep(store: CheckpointStore, launch: MagicMock, **kwargs: object) -> RecoverySummary:
    return recover_stale_jobs(store, launch, stale_after=STALE_AFTER, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Stale jobs
# ---------------------------------------------------------------------------


class TestStaleJobs:
    def test_recent_job_is_left_alone(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        clock.advance(minutes=5)
        launch = MagicMock()

        summary = _sweep(store, launch)

        assert summary.checked == 0
        launch.assert_not_called()
        assert store.load(job.id).status is JobStatus.SEARCHING_PROFILES

    def test_stale_job_is_retried(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        clock.advance(minutes=11)
        launch = MagicMock()

        summary = _sweep(store, launch)

        assert summary.recovered == [job.id]
        launch.assert_called_once_with(job.id, failure_prefix=AUTO_RECOVERY_PREFIX)
        saved = store.load(job.id)
        assert saved.status is JobStatus.CREATED
        assert saved.current_stage.label is StageLabel.AUTO_RECOVERY
        assert saved.retry_count == 1

    def test_stuck_at_creation_is_retried(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        clock.advance(minutes=30)
        summary = _sweep(store, MagicMock())
        assert summary.recovered == [job.id]

    def test_retry_ceiling_fails_job(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        store.commit(job.id, retry_count=3)
        expected = stuck_message(store.load(job.id))
        clock.advance(minutes=11)
        launch = MagicMock()

        summary = _sweep(store, launch)

        assert summary.max_retries_reached == [job.id]
        launch.assert_not_called()
        saved = store.load(job.id)
        assert saved.status is JobStatus.FAILED
        assert saved.error_message == expected
        assert expected == (
            "Job stuck - Failed after 3 automatic recovery attempts. Last stage: SEARCH_ITERATION_1"
        )

    def test_ceiling_override(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        store.commit(job.id, retry_count=1)
        clock.advance(minutes=11)

        summary = _sweep(store, MagicMock(), max_retries=1)

        assert summary.max_retries_reached == [job.id]

    def test_active_job_is_skipped(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        clock.advance(minutes=11)
        launch = MagicMock()

        summary = _sweep(store, launch, is_active=lambda job_id: job_id == job.id)

        assert summary.skipped == [job.id]
        launch.assert_not_called()
        assert store.load(job.id).retry_count == 0

    def test_launch_failure_marks_job_failed(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _searching(store, job.id)
        clock.advance(minutes=11)

        summary = _sweep(store, MagicMock(side_effect=RuntimeError("no event loop")))

        assert summary.failed == [job.id]
        saved = store.load(job.id)
        assert saved.status is JobStatus.FAILED
        assert saved.error_message == f"{AUTO_RECOVERY_PREFIX}no event loop"

    def test_terminal_jobs_are_ignored(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        store.mark_terminal(job.id, JobStatus.COMPLETED)
        clock.advance(days=1)
        assert _sweep(store, MagicMock()).checked == 0


# ---------------------------------------------------------------------------
# Rate-limited jobs
# ---------------------------------------------------------------------------


class TestRateLimitedJobs:
    def test_waits_for_reset(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        _pause(store, clock, job.id)
        clock.advance(minutes=30)
        launch = MagicMock()

        summary = _sweep(store, launch)

        assert summary.waiting == [job.id]
        launch.assert_not_called()
        assert store.load(job.id).status is JobStatus.RATE_LIMITED

    def test_revived_after_reset_without_counting(
        self, store: CheckpointStore, clock: Clock, job: JobRecord,
    ) -> None:
        _pause(store, clock, job.id)
        clock.advance(hours=2)
        launch = MagicMock()

        summary = _sweep(store, launch)

        assert summary.recovered == [job.id]
        launch.assert_called_once_with(job.id, failure_prefix=AUTO_RECOVERY_PREFIX)
        saved = store.load(job.id)
        assert saved.status is JobStatus.CREATED
        assert saved.retry_count == 0
        assert saved.rate_limit_reset_at is None

    def test_paused_job_never_hits_ceiling(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        store.commit(job.id, retry_count=3)
        _pause(store, clock, job.id)
        clock.advance(hours=2)

        summary = _sweep(store, MagicMock())

        assert summary.recovered == [job.id]
        assert store.load(job.id).retry_count == 3


class TestSummary:
    def test_checked_counts_every_bucket(self, store: CheckpointStore, clock: Clock, job: JobRecord) -> None:
        other = store.create_job(user_id="user-2", raw_job_description="Data engineer", max_candidates=5)
        _searching(store, job.id)
        _pause(store, clock, other.id, hours=3)
        clock.advance(minutes=11)

        summary = _sweep(store, MagicMock())

        assert summary.recovered == [job.id]
        assert summary.waiting == [other.id]
        assert summary.checked == 2
