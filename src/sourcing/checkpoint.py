"""Durable job checkpoints on top of the SQLite layer.

``CheckpointStore.commit`` is the only way stage progress becomes durable.
Every commit is a single transaction and refreshes ``last_activity_at``, so
the recovery sweeper can tell a live job from a stuck one.
"""

import json
import logging
import sqlite3
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel

from src.core import db
from src.core.errors import JobNotFoundError, RateLimitSignal
from src.core.schemas import (
    TERMINAL_STATUSES,
    CandidateRecord,
    CandidateScore,
    CandidateSummary,
    EnrichmentResult,
    JobProgress,
    JobRecord,
    JobRequirements,
    JobStatus,
    ParsedProfile,
    ProfileSearchResult,
    ScrapingStatus,
    SearchVariant,
    StageLabel,
    StageMarker,
    StageName,
    stage_position,
    utcnow,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SET_COLUMNS = frozenset({"discovered_urls", "enriched_urls", "used_query_ids"})

BATCH_SCRAPE = "scrape"
BATCH_PARSE = "parse"


def _encode(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, StageMarker):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return value


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _job_from_row(row: sqlite3.Row) -> JobRecord:
    data = dict(row)
    return JobRecord(
        id=data["id"],
        user_id=data["user_id"],
        title=data["title"],
        raw_job_description=data["raw_job_description"],
        job_requirements=JobRequirements.model_validate_json(data["job_requirements"]),
        max_candidates=data["max_candidates"],
        status=JobStatus(data["status"]),
        current_stage=StageMarker.parse(data["current_stage"]),
        last_completed_stage=(
            StageName(data["last_completed_stage"]) if data["last_completed_stage"] else None
        ),
        search_variants=[SearchVariant.model_validate(v) for v in json.loads(data["search_variants"])],
        discovered_urls=frozenset(json.loads(data["discovered_urls"])),
        enriched_urls=frozenset(json.loads(data["enriched_urls"])),
        used_query_ids=frozenset(json.loads(data["used_query_ids"])),
        search_iterations=data["search_iterations"],
        last_scraped_batch=data["last_scraped_batch"],
        scrape_batch_total=data["scrape_batch_total"],
        last_parsed_batch=data["last_parsed_batch"],
        parse_batch_total=data["parse_batch_total"],
        total_profiles_found=data["total_profiles_found"],
        profiles_scraped=data["profiles_scraped"],
        profiles_parsed=data["profiles_parsed"],
        profiles_saved=data["profiles_saved"],
        profiles_scored=data["profiles_scored"],
        error_message=data["error_message"],
        rate_limit_hit_at=_parse_dt(data["rate_limit_hit_at"]),
        rate_limit_reset_at=_parse_dt(data["rate_limit_reset_at"]),
        rate_limit_provider=data["rate_limit_provider"],
        retry_count=data["retry_count"],
        max_retries=data["max_retries"],
        created_at=datetime.fromisoformat(data["created_at"]),
        last_activity_at=datetime.fromisoformat(data["last_activity_at"]),
        completed_at=_parse_dt(data["completed_at"]),
        failed_at=_parse_dt(data["failed_at"]),
    )


def _candidate_from_row(row: sqlite3.Row) -> CandidateRecord:
    data = dict(row)
    return CandidateRecord(
        id=data["id"],
        job_id=data["job_id"],
        profile_url=data["profile_url"],
        full_name=data["full_name"],
        headline=data["headline"],
        location=data["location"],
        photo_url=data["photo_url"],
        email=data["email"],
        phone=data["phone"],
        has_contact_info=bool(data["has_contact_info"]),
        email_source=data["email_source"],
        scraping_status=ScrapingStatus(data["scraping_status"]),
        profile=ParsedProfile.model_validate_json(data["profile_json"]) if data["profile_json"] else None,
        is_duplicate=bool(data["is_duplicate"]),
        first_seen_job_id=data["first_seen_job_id"],
        is_scored=bool(data["is_scored"]),
        match_score=data["match_score"],
        score=CandidateScore.model_validate_json(data["score_json"]) if data["score_json"] else None,
        raw_data=json.loads(data["raw_data"] or "{}"),
        created_at=datetime.fromisoformat(data["created_at"]),
        enriched_at=_parse_dt(data["enriched_at"]),
        scraped_at=_parse_dt(data["scraped_at"]),
        scored_at=_parse_dt(data["scored_at"]),
    )


class CheckpointStore:
    """Reads and writes job checkpoints, candidate records and batch payloads."""

    def __init__(self, conn: sqlite3.Connection, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._conn = conn
        self._clock = clock

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create_job(
        self,
        *,
        user_id: str,
        raw_job_description: str,
        max_candidates: int,
        title: str = "",
        job_requirements: JobRequirements | None = None,
        max_retries: int = 3,
        job_id: str | None = None,
    ) -> JobRecord:
        job_id = job_id or uuid.uuid4().hex
        now = self.now().isoformat()
        db.insert_job(
            self._conn,
            job_id,
            {
                "user_id": user_id,
                "title": title,
                "raw_job_description": raw_job_description,
                "job_requirements": (job_requirements or JobRequirements()).model_dump_json(),
                "max_candidates": max_candidates,
                "max_retries": max_retries,
                "status": JobStatus.CREATED.value,
                "current_stage": StageLabel.CREATED.value,
                "created_at": now,
                "last_activity_at": now,
            },
        )
        logger.info("Created sourcing job %s (target %d candidates)", job_id, max_candidates)
        return self.load(job_id)

    def load(self, job_id: str) -> JobRecord:
        row = db.get_job(self._conn, job_id)
        if row is None:
            msg = f"Sourcing job not found: {job_id}"
            raise JobNotFoundError(msg)
        return _job_from_row(row)

    def commit(self, job_id: str, **fields: Any) -> JobRecord:
        """Merge ``fields`` into the job's checkpoint.

        URL and query-id sets are unioned with what is stored, so they never
        shrink. ``last_completed_stage`` only moves forward; a backwards
        write is ignored. Every other field is written as given.
        """
        current = self.load(job_id)
        row: dict[str, Any] = {}
        for name, value in fields.items():
            if name in SET_COLUMNS:
                merged = getattr(current, name) | frozenset(value or ())
                row[name] = json.dumps(sorted(merged))
            elif name == "last_completed_stage":
                if value is None:
                    continue
                stage = StageName(value)
                if stage_position(stage) < stage_position(current.last_completed_stage):
                    logger.warning(
                        "Job %s: ignoring backwards checkpoint %s (already at %s)",
                        job_id, stage, current.last_completed_stage,
                    )
                    continue
                row[name] = stage.value
            elif name == "search_variants":
                row[name] = json.dumps([v.model_dump(mode="json") for v in value])
            else:
                row[name] = _encode(value)
        row["last_activity_at"] = self.now().isoformat()
        db.update_job(self._conn, job_id, row)
        return self.load(job_id)

    def mark_terminal(self, job_id: str, status: JobStatus, **details: Any) -> JobRecord:
        """Move a job to COMPLETED or FAILED, stamping the matching timestamp."""
        if status not in TERMINAL_STATUSES:
            msg = f"Not a terminal status: {status}"
            raise ValueError(msg)
        stamp = "completed_at" if status is JobStatus.COMPLETED else "failed_at"
        details.setdefault(stamp, self.now())
        if status is JobStatus.FAILED:
            details.setdefault("current_stage", StageMarker.at(StageLabel.FAILED))
        logger.info("Job %s -> %s", job_id, status)
        return self.commit(job_id, status=status, **details)

    def mark_rate_limited(self, job_id: str, signal: RateLimitSignal, **fields: Any) -> JobRecord:
        """Pause a job until the provider's quota resets."""
        fields.setdefault("current_stage", StageMarker.at(StageLabel.RATE_LIMITED))
        logger.warning(
            "Job %s rate limited by %s until %s",
            job_id, signal.provider, signal.reset_at.isoformat(),
        )
        return self.commit(
            job_id,
            status=JobStatus.RATE_LIMITED,
            error_message=signal.detail,
            rate_limit_hit_at=self.now(),
            rate_limit_reset_at=signal.reset_at,
            rate_limit_provider=signal.provider,
            **fields,
        )

    def begin_retry(self, job_id: str, label: StageLabel, *, count_attempt: bool = True) -> JobRecord:
        """Reset a job to CREATED for another run.

        The status reset and the retry counter increment happen in the same
        UPDATE statement.
        """
        self.load(job_id)
        db.update_job(
            self._conn,
            job_id,
            {
                "status": JobStatus.CREATED.value,
                "current_stage": label.value,
                "error_message": None,
                "failed_at": None,
                "completed_at": None,
                "rate_limit_reset_at": None,
                "last_activity_at": self.now().isoformat(),
            },
            increments=("retry_count",) if count_attempt else (),
        )
        return self.load(job_id)

    def delete_job(self, job_id: str) -> bool:
        return db.delete_job(self._conn, job_id)

    def stale_jobs(self, statuses: Iterable[JobStatus], inactive_before: datetime) -> list[JobRecord]:
        rows = db.find_stale_jobs(
            self._conn, [s.value for s in statuses], inactive_before.isoformat(),
        )
        return [_job_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def get_candidate(self, job_id: str, profile_url: str) -> CandidateRecord | None:
        row = db.get_candidate(self._conn, job_id, profile_url)
        return None if row is None else _candidate_from_row(row)

    def create_candidate(
        self,
        job_id: str,
        profile_url: str,
        *,
        enrichment: EnrichmentResult,
        email_source: str,
        search_result: ProfileSearchResult | None = None,
    ) -> bool:
        """Create a sparse candidate record from an enrichment hit.

        Returns False if the (job, url) record already exists.
        """
        now = self.now().isoformat()
        fallback_name = search_result.full_name if search_result else "Unknown"
        raw = {
            "search": search_result.model_dump(mode="json") if search_result else None,
            "enrichment": enrichment.raw,
        }
        return db.insert_candidate(
            self._conn,
            job_id,
            profile_url,
            {
                "full_name": enrichment.full_name or fallback_name or "Unknown",
                "headline": enrichment.headline or (search_result.headline if search_result else None),
                "location": enrichment.location or (search_result.location if search_result else None),
                "photo_url": enrichment.photo_url,
                "email": enrichment.email,
                "phone": enrichment.phone,
                "has_contact_info": int(bool(enrichment.email or enrichment.phone)),
                "email_source": email_source,
                "enriched_at": now,
                "scraping_status": ScrapingStatus.PENDING.value,
                "raw_data": json.dumps(raw),
                "created_at": now,
            },
        )

    def count_candidates(self, job_id: str, **filters: Any) -> int:
        return db.count_candidates(self._conn, job_id, **_filter_values(filters))

    def count_with_contact(self, job_id: str) -> int:
        """Authoritative recount of candidates carrying an email or phone."""
        return db.count_candidates(self._conn, job_id, has_contact_info=True)

    def list_candidates(self, job_id: str, *, limit: int | None = None, **filters: Any) -> list[CandidateRecord]:
        rows = db.list_candidates(self._conn, job_id, limit=limit, **_filter_values(filters))
        return [_candidate_from_row(r) for r in rows]

    def first_seen_job(
        self,
        user_id: str,
        profile_url: str,
        *,
        exclude_job_id: str,
        before_id: int | None = None,
    ) -> str | None:
        """Another job of the same owner that held this profile first, if any."""
        return db.find_first_seen_job(self._conn, user_id, profile_url, exclude_job_id, before_id)

    def save_parsed_profile(
        self,
        job_id: str,
        profile: ParsedProfile,
        *,
        first_seen_job_id: str | None = None,
    ) -> bool:
        """Write a parsed profile onto its sparse record and mark it SCRAPED.

        Contact data from enrichment is kept; the profile only fills gaps.
        Returns False if no record exists for the profile URL.
        """
        row = db.get_candidate(self._conn, job_id, profile.profile_url)
        if row is None:
            return False
        email = row["email"] or profile.email
        phone = row["phone"] or profile.phone
        db.update_candidate(
            self._conn,
            row["id"],
            {
                "full_name": profile.full_name or row["full_name"],
                "headline": profile.headline or row["headline"],
                "location": profile.location or row["location"],
                "photo_url": profile.photo_url or row["photo_url"],
                "email": email,
                "phone": phone,
                "has_contact_info": int(bool(email or phone)),
                "profile_json": profile.model_dump_json(),
                "is_duplicate": int(first_seen_job_id is not None),
                "first_seen_job_id": first_seen_job_id,
                "scraping_status": ScrapingStatus.SCRAPED.value,
                "scraped_at": self.now().isoformat(),
            },
        )
        return True

    def save_score(self, candidate_id: int, score: CandidateScore) -> None:
        db.update_candidate(
            self._conn,
            candidate_id,
            {
                "is_scored": 1,
                "match_score": score.total_score,
                "score_json": score.model_dump_json(),
                "scored_at": self.now().isoformat(),
            },
        )

    # ------------------------------------------------------------------
    # Batch payloads
    # ------------------------------------------------------------------

    def commit_batch(
        self,
        job_id: str,
        kind: str,
        batch_index: int,
        items: Sequence[BaseModel],
        **fields: Any,
    ) -> JobRecord:
        """Store one batch's payload and advance the job's pointer atomically."""
        payload = json.dumps([item.model_dump(mode="json") for item in items])
        db.save_batch_payload(
            self._conn, job_id, kind, batch_index, payload, self.now().isoformat(),
        )
        return self.commit(job_id, **fields)

    def load_batches(self, job_id: str, kind: str, model: type[M], *, up_to: int | None = None) -> list[M]:
        """Stored items of one kind, flattened in batch order.

        With ``up_to``, only batches ``1..up_to`` are returned.
        """
        items: list[M] = []
        for row in db.load_batch_payloads(self._conn, job_id, kind):
            if up_to is not None and row["batch_index"] > up_to:
                break
            items.extend(model.model_validate(entry) for entry in json.loads(row["payload"]))
        return items

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def progress(self, job_id: str, top_n: int = 5) -> JobProgress:
        job = self.load(job_id)
        top = [_candidate_from_row(r) for r in db.top_scored_candidates(self._conn, job_id, top_n)]
        return JobProgress(
            job_id=job.id,
            status=job.status,
            current_stage=str(job.current_stage),
            last_completed_stage=job.last_completed_stage,
            max_candidates=job.max_candidates,
            total_profiles_found=job.total_profiles_found,
            profiles_scraped=job.profiles_scraped,
            profiles_parsed=job.profiles_parsed,
            profiles_saved=job.profiles_saved,
            profiles_scored=job.profiles_scored,
            candidates_total=db.count_candidates(self._conn, job_id),
            error_message=job.error_message,
            rate_limit_reset_at=job.rate_limit_reset_at,
            retry_count=job.retry_count,
            top_candidates=[
                CandidateSummary(
                    full_name=c.full_name,
                    profile_url=c.profile_url,
                    match_score=c.match_score,
                    interview_readiness=c.score.interview_readiness if c.score else None,
                    is_duplicate=c.is_duplicate,
                )
                for c in top
            ],
        )


def _filter_values(filters: dict[str, Any]) -> dict[str, Any]:
    return {k: _encode(v) if isinstance(v, Enum) else v for k, v in filters.items()}
