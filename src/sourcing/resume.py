"""Rebuild in-memory workflow state from a job's durable checkpoint."""

import logging
from dataclasses import dataclass

from src.core.schemas import (
    STAGE_ORDER,
    ParsedProfile,
    ProfileSearchResult,
    ScrapedProfile,
    ScrapingStatus,
    StageName,
    stage_position,
)
from src.sourcing.checkpoint import BATCH_PARSE, BATCH_SCRAPE, CheckpointStore
from src.sourcing.planner import plan_queries
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)

# Stages after which the graph ends; resuming them re-runs the same stage.
_FINAL_STAGES = frozenset({StageName.SCORE_CANDIDATES, StageName.HANDLE_NO_CANDIDATES})


@dataclass(frozen=True)
class ResumePlan:
    state: SourcingState
    start_at: StageName


def next_stage(last_completed: StageName | None) -> StageName:
    """The stage to run after ``last_completed`` in topological order."""
    if last_completed is None:
        return StageName.FORMAT_JD
    if last_completed in _FINAL_STAGES:
        return last_completed
    return STAGE_ORDER[stage_position(last_completed) + 1]


def build_resume_state(store: CheckpointStore, job_id: str) -> ResumePlan:
    """Reconstruct the state a fresh run would have reached at the last completed stage.

    Counters are recounted from the candidate table rather than trusted from
    the job row. Discovered URLs that were never enriched come back as
    pending search results. Query plans are recomputed from the stored
    variants, and scraped and parsed batches are reloaded from their payloads.
    """
    job = store.load(job_id)
    start_at = next_stage(job.last_completed_stage)
    if stage_position(start_at) > stage_position(StageName.FORMAT_JD) and not job.search_variants:
        logger.warning("Job %s: checkpoint has no search variants, restarting from %s", job_id, StageName.FORMAT_JD)
        start_at = StageName.FORMAT_JD

    pending_urls = sorted(job.discovered_urls - job.enriched_urls)
    state = SourcingState(
        job_id=job.id,
        user_id=job.user_id,
        raw_job_description=job.raw_job_description,
        job_requirements=job.job_requirements,
        max_candidates=job.max_candidates,
        search_variants=job.search_variants,
        search_queries=plan_queries(job.search_variants, job.max_candidates) if job.search_variants else [],
        current_search_results=[ProfileSearchResult(profile_url=url) for url in pending_urls],
        discovered_urls=job.discovered_urls,
        enriched_urls=job.enriched_urls,
        used_query_ids=job.used_query_ids,
        search_iterations=job.search_iterations,
        candidates_with_emails=store.count_with_contact(job_id),
        last_scraped_batch=job.last_scraped_batch,
        last_parsed_batch=job.last_parsed_batch,
        profiles_saved=store.count_candidates(job_id, scraping_status=ScrapingStatus.SCRAPED),
        profiles_scored=store.count_candidates(job_id, is_scored=True),
        scraped_profiles=store.load_batches(job_id, BATCH_SCRAPE, ScrapedProfile, up_to=job.last_scraped_batch),
        parsed_profiles=store.load_batches(job_id, BATCH_PARSE, ParsedProfile, up_to=job.last_parsed_batch),
        current_stage=job.current_stage,
    )
    logger.info(
        "Job %s: resuming at %s (last completed %s, %d candidates, %d pending URLs, "
        "scrape batch %d, parse batch %d)",
        job_id, start_at, job.last_completed_stage, state.candidates_with_emails,
        len(pending_urls), job.last_scraped_batch, job.last_parsed_batch,
    )
    return ResumePlan(state=state, start_at=start_at)
