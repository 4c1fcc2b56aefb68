"""Tests for CheckpointStore: commits, terminal moves, retries, candidates, batches."""

from datetime import timedelta

import pytest

from src.core.errors import JobNotFoundError, RateLimitSignal
from src.core.schemas import (
    EnrichmentResult,
    JobRecord,
    JobStatus,
    ParsedProfile,
    ProfileSearchResult,
    ScrapedProfile,
    ScrapingStatus,
    StageLabel,
    StageMarker,
    StageName,
)
from src.sourcing.checkpoint import BATCH_PARSE, BATCH_SCRAPE, CheckpointStore
from tests.fakes import Clock, profile_url, score, variants


def _add_candidate(store: CheckpointStore, job_id: str, n: int, email: str | None = "x@example.com") -> str:
    url = profile_url(n)
    store.create_candidate(
        job_id, url,
        enrichment=EnrichmentResult(has_contact=email is not None, email=email),
        email_source="salesql",
        search_result=ProfileSearchResult(profile_url=url, full_name=f"Person {n}", headline="Engineer"),
    )
    return url


class TestJobs:
    def test_create_and_load(self, store: CheckpointStore, job: JobRecord) -> None:
        loaded = store.load(job.id)
        assert loaded.status is JobStatus.CREATED
        assert loaded.current_stage == StageMarker.at(StageLabel.CREATED)
        assert loaded.job_requirements.location == "Germany"
        assert loaded.max_retries == 3
        assert loaded.last_completed_stage is None

    def test_load_missing(self, store: CheckpointStore) -> None:
        with pytest.raises(JobNotFoundError, match="not found"):
            store.load("missing")

    def test_commit_round_trips_typed_fields(self, store: CheckpointStore, job: JobRecord) -> None:
        store.commit(
            job.id,
            status=JobStatus.SCRAPING_PROFILES,
            current_stage=StageMarker.at(StageLabel.SCRAPING_BATCH, 2, 5),
            search_variants=variants(2),
            last_completed_stage=StageName.ENRICH_AND_CREATE,
        )
        loaded = store.load(job.id)
        assert loaded.status is JobStatus.SCRAPING_PROFILES
        assert str(loaded.current_stage) == "SCRAPING_BATCH_2_OF_5"
        assert loaded.search_variants == variants(2)
        assert loaded.last_completed_stage is StageName.ENRICH_AND_CREATE

    def test_commit_unions_sets(self, store: CheckpointStore, job: JobRecord) -> None:
        store.commit(job.id, discovered_urls={"a", "b"}, used_query_ids={1})
        store.commit(job.id, discovered_urls={"c"}, used_query_ids=set())
        loaded = store.load(job.id)
        assert loaded.discovered_urls == {"a", "b", "c"}
        assert loaded.used_query_ids == {1}

    def test_last_completed_never_moves_backwards(self, store: CheckpointStore, job: JobRecord) -> None:
        store.commit(job.id, last_completed_stage=StageName.SCRAPE_CANDIDATES)
        store.commit(job.id, last_completed_stage=StageName.SEARCH_PROFILES)
        store.commit(job.id, last_completed_stage=None)
        assert store.load(job.id).last_completed_stage is StageName.SCRAPE_CANDIDATES

    def test_commit_refreshes_activity(self, store: CheckpointStore, job: JobRecord, clock: Clock) -> None:
        later = clock.advance(minutes=5)
        store.commit(job.id, search_iterations=1)
        assert store.load(job.id).last_activity_at == later

    def test_mark_terminal_completed(self, store: CheckpointStore, job: JobRecord, clock: Clock) -> None:
        done = store.mark_terminal(job.id, JobStatus.COMPLETED, profiles_scored=4)
        assert done.status is JobStatus.COMPLETED
        assert done.completed_at == clock.now
        assert done.profiles_scored == 4

    def test_mark_terminal_failed_sets_marker(self, store: CheckpointStore, job: JobRecord) -> None:
        failed = store.mark_terminal(job.id, JobStatus.FAILED, error_message="boom")
        assert failed.current_stage == StageMarker.at(StageLabel.FAILED)
        assert failed.error_message == "boom"
        assert failed.failed_at is not None

    def test_mark_terminal_rejects_working_status(self, store: CheckpointStore, job: JobRecord) -> None:
        with pytest.raises(ValueError, match="Not a terminal status"):
            store.mark_terminal(job.id, JobStatus.SCRAPING_PROFILES)

    def test_mark_rate_limited(self, store: CheckpointStore, job: JobRecord, clock: Clock) -> None:
        reset = clock.now + timedelta(hours=2)
        signal = RateLimitSignal("quota", provider="salesql", reset_at=reset, detail="Try later")
        paused = store.mark_rate_limited(job.id, signal, enriched_urls={"a"})
        assert paused.status is JobStatus.RATE_LIMITED
        assert paused.rate_limit_reset_at == reset
        assert paused.rate_limit_provider == "salesql"
        assert paused.error_message == "Try later"
        assert paused.enriched_urls == {"a"}

    def test_begin_retry_counts_and_resets_together(self, store: CheckpointStore, job: JobRecord) -> None:
        store.commit(job.id, last_completed_stage=StageName.SEARCH_PROFILES)
        store.mark_terminal(job.id, JobStatus.FAILED, error_message="boom")
        retried = store.begin_retry(job.id, StageLabel.RETRY_INITIATED)
        assert retried.status is JobStatus.CREATED
        assert retried.retry_count == 1
        assert retried.error_message is None
        assert retried.failed_at is None
        assert str(retried.current_stage) == "RETRY_INITIATED"
        assert retried.last_completed_stage is StageName.SEARCH_PROFILES

    def test_begin_retry_without_counting(self, store: CheckpointStore, job: JobRecord) -> None:
        retried = store.begin_retry(job.id, StageLabel.AUTO_RECOVERY, count_attempt=False)
        assert retried.retry_count == 0

    def test_stale_jobs(self, store: CheckpointStore, job: JobRecord, clock: Clock) -> None:
        store.commit(job.id, status=JobStatus.SCRAPING_PROFILES)
        clock.advance(minutes=15)
        stale = store.stale_jobs([JobStatus.SCRAPING_PROFILES], clock.now - timedelta(minutes=10))
        assert [j.id for j in stale] == [job.id]
        assert store.stale_jobs([JobStatus.SCRAPING_PROFILES], clock.now - timedelta(minutes=20)) == []

    def test_delete_job(self, store: CheckpointStore, job: JobRecord) -> None:
        assert store.delete_job(job.id) is True
        with pytest.raises(JobNotFoundError):
            store.load(job.id)


class TestCandidates:
    def test_create_sparse_record(self, store: CheckpointStore, job: JobRecord) -> None:
        url = _add_candidate(store, job.id, 1)
        record = store.get_candidate(job.id, url)
        assert record is not None
        assert record.full_name == "Person 1"
        assert record.headline == "Engineer"
        assert record.email == "x@example.com"
        assert record.has_contact_info is True
        assert record.email_source == "salesql"
        assert record.scraping_status is ScrapingStatus.PENDING
        assert record.raw_data["search"]["full_name"] == "Person 1"

    def test_create_twice_is_noop(self, store: CheckpointStore, job: JobRecord) -> None:
        _add_candidate(store, job.id, 1)
        assert store.create_candidate(
            job.id, profile_url(1), enrichment=EnrichmentResult(has_contact=True, email="y@example.com"),
            email_source="salesql",
        ) is False
        assert store.count_candidates(job.id) == 1

    def test_count_with_contact(self, store: CheckpointStore, job: JobRecord) -> None:
        _add_candidate(store, job.id, 1)
        _add_candidate(store, job.id, 2, email=None)
        assert store.count_with_contact(job.id) == 1

    def test_save_parsed_profile_keeps_enriched_contact(self, store: CheckpointStore, job: JobRecord) -> None:
        url = _add_candidate(store, job.id, 1)
        profile = ParsedProfile(full_name="Jane Doe", profile_url=url, email="other@example.com", headline="CTO")
        assert store.save_parsed_profile(job.id, profile, first_seen_job_id="earlier") is True
        record = store.get_candidate(job.id, url)
        assert record is not None
        assert record.email == "x@example.com"
        assert record.full_name == "Jane Doe"
        assert record.headline == "CTO"
        assert record.scraping_status is ScrapingStatus.SCRAPED
        assert record.is_duplicate is True
        assert record.first_seen_job_id == "earlier"
        assert record.profile is not None and record.profile.full_name == "Jane Doe"

    def test_save_parsed_profile_without_record(self, store: CheckpointStore, job: JobRecord) -> None:
        assert store.save_parsed_profile(job.id, ParsedProfile(profile_url=profile_url(9))) is False

    def test_save_score(self, store: CheckpointStore, job: JobRecord) -> None:
        url = _add_candidate(store, job.id, 1)
        record = store.get_candidate(job.id, url)
        assert record is not None
        store.save_score(record.id, score(82.0))
        scored = store.get_candidate(job.id, url)
        assert scored is not None
        assert scored.is_scored is True
        assert scored.match_score == 82.0
        assert scored.score is not None and scored.score.total_score == 82.0

    def test_list_with_enum_filter(self, store: CheckpointStore, job: JobRecord) -> None:
        _add_candidate(store, job.id, 1)
        _add_candidate(store, job.id, 2)
        pending = store.list_candidates(job.id, scraping_status=ScrapingStatus.PENDING)
        assert [c.profile_url for c in pending] == [profile_url(1), profile_url(2)]


class TestBatches:
    def test_commit_batch_stores_payload_and_pointer(self, store: CheckpointStore, job: JobRecord) -> None:
        items = [ScrapedProfile(url=profile_url(1), data={"fullName": "A"})]
        store.commit_batch(job.id, BATCH_SCRAPE, 1, items, last_scraped_batch=1)
        assert store.load(job.id).last_scraped_batch == 1
        assert store.load_batches(job.id, BATCH_SCRAPE, ScrapedProfile) == items

    def test_load_batches_up_to(self, store: CheckpointStore, job: JobRecord) -> None:
        for index in (1, 2, 3):
            store.commit_batch(
                job.id, BATCH_PARSE, index, [ParsedProfile(full_name=f"P{index}", profile_url=profile_url(index))],
            )
        loaded = store.load_batches(job.id, BATCH_PARSE, ParsedProfile, up_to=2)
        assert [p.full_name for p in loaded] == ["P1", "P2"]


class TestProgress:
    def test_top_candidates_by_score(self, store: CheckpointStore, job: JobRecord) -> None:
        for n, total in ((1, 55.0), (2, 91.0), (3, 70.0)):
            _add_candidate(store, job.id, n)
            record = store.get_candidate(job.id, profile_url(n))
            assert record is not None
            store.save_score(record.id, score(total))
        _add_candidate(store, job.id, 4)

        progress = store.progress(job.id, top_n=2)
        assert progress.candidates_total == 4
        assert [c.match_score for c in progress.top_candidates] == [91.0, 70.0]
        assert progress.current_stage == "CREATED"
