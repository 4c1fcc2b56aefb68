"""Stage: write parsed profiles onto their candidate records."""

import logging
from typing import Any

from src.core.schemas import (
    JobStatus,
    ScrapingStatus,
    StageError,
    StageLabel,
    StageMarker,
    StageName,
)
from src.sourcing.context import StageContext
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def update_candidates(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Persist parsed data and flag profiles the owner already has in another job.

    Duplicates are flagged, never rejected. Records already SCRAPED are
    skipped, so re-running the stage is harmless.
    """
    job_id = state.job_id
    store = ctx.store
    size = ctx.config.update_batch_size

    saved_urls = {
        c.profile_url for c in store.list_candidates(job_id, scraping_status=ScrapingStatus.SCRAPED)
    }
    remaining = [p for p in state.parsed_profiles if p.profile_url not in saved_urls]
    batches = [remaining[i:i + size] for i in range(0, len(remaining), size)]
    total = len(batches)
    errors: list[StageError] = []
    duplicates = 0

    if saved_urls and remaining:
        logger.info("Job %s: %d already saved, %d remaining", job_id, len(saved_urls), len(remaining))
    store.commit(job_id, status=JobStatus.SAVING_PROFILES)

    for index, batch in enumerate(batches, start=1):
        for profile in batch:
            try:
                record = store.get_candidate(job_id, profile.profile_url)
                if record is None:
                    logger.warning("Job %s: no candidate record for %s", job_id, profile.profile_url)
                    continue
                first_seen = store.first_seen_job(
                    state.user_id, profile.profile_url,
                    exclude_job_id=job_id, before_id=record.id,
                )
                store.save_parsed_profile(job_id, profile, first_seen_job_id=first_seen)
                if first_seen:
                    duplicates += 1
                    logger.debug("Job %s: %s first seen in job %s", job_id, profile.profile_url, first_seen)
            except Exception as e:
                logger.warning("Job %s: saving %s failed", job_id, profile.profile_url, exc_info=True)
                errors.append(
                    StageError(
                        stage=StageName.UPDATE_CANDIDATES,
                        message=f"Saving {profile.profile_url} failed: {e}",
                    ),
                )
        saved = store.count_candidates(job_id, scraping_status=ScrapingStatus.SCRAPED)
        store.commit(
            job_id,
            profiles_saved=saved,
            current_stage=StageMarker.at(StageLabel.UPDATING_BATCH, index, total),
        )

    saved = store.count_candidates(job_id, scraping_status=ScrapingStatus.SCRAPED)
    marker = StageMarker.at(StageLabel.UPDATE_COMPLETE)
    store.commit(
        job_id,
        profiles_saved=saved,
        current_stage=marker,
        last_completed_stage=StageName.UPDATE_CANDIDATES,
    )
    logger.info("Job %s: %d candidates saved (%d duplicates flagged)", job_id, saved, duplicates)
    return {"profiles_saved": saved, "current_stage": marker, "errors": errors}
