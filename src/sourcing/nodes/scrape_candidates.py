"""Stage: fetch full profile payloads for pending candidates, batch by batch."""

import logging
from typing import Any

from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import (
    JobStatus,
    ScrapedProfile,
    ScrapingStatus,
    StageError,
    StageLabel,
    StageMarker,
    StageName,
)
from src.sourcing.checkpoint import BATCH_SCRAPE
from src.sourcing.context import StageContext
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def scrape_candidates(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Scrape PENDING candidates in id order.

    Batches up to ``last_scraped_batch`` are already stored and are skipped.
    Each finished batch stores its payload and advances the pointer in one
    checkpoint.
    """
    job_id = state.job_id
    store = ctx.store
    size = ctx.config.scrape_batch_size

    pending = store.list_candidates(job_id, scraping_status=ScrapingStatus.PENDING)
    batches = [pending[i:i + size] for i in range(0, len(pending), size)]
    total = len(batches)
    done = min(state.last_scraped_batch, total)
    scraped: list[ScrapedProfile] = list(state.scraped_profiles)
    errors: list[StageError] = []

    if done:
        logger.info("Job %s: resuming scrape after batch %d of %d", job_id, done, total)
    store.commit(job_id, status=JobStatus.SCRAPING_PROFILES, scrape_batch_total=total)

    for index in range(done + 1, total + 1):
        batch = batches[index - 1]
        marker = StageMarker.at(StageLabel.SCRAPING_BATCH, index, total)
        store.commit(job_id, current_stage=marker)
        logger.info("Job %s: scraping batch %d/%d (%d profiles)", job_id, index, total, len(batch))

        try:
            results = await ctx.capabilities.scraper.scrape([c.profile_url for c in batch])
        except RateLimitSignal as signal:
            update = ctx.pause_for_rate_limit(job_id, StageName.SCRAPE_CANDIDATES, signal)
            return {
                **update,
                "scraped_profiles": scraped,
                "last_scraped_batch": index - 1,
                "errors": [*errors, *update["errors"]],
            }
        except StageFatalError as e:
            return ctx.fail(job_id, StageName.SCRAPE_CANDIDATES, str(e))
        except Exception as e:
            logger.warning("Job %s: scrape batch %d failed", job_id, index, exc_info=True)
            errors.append(
                StageError(stage=StageName.SCRAPE_CANDIDATES, message=f"Scrape batch {index} failed: {e}"),
            )
            results = []

        succeeded = [r for r in results if r.succeeded]
        failed = len(batch) - len(succeeded)
        if failed:
            logger.warning("Job %s: %d profiles in batch %d could not be scraped", job_id, failed, index)
        scraped.extend(succeeded)
        store.commit_batch(
            job_id, BATCH_SCRAPE, index, succeeded,
            last_scraped_batch=index,
            profiles_scraped=len(scraped),
        )
        done = index

    marker = StageMarker.at(StageLabel.SCRAPING_COMPLETE)
    store.commit(
        job_id,
        current_stage=marker,
        profiles_scraped=len(scraped),
        last_completed_stage=StageName.SCRAPE_CANDIDATES,
    )
    logger.info("Job %s: scraped %d profiles in %d batches", job_id, len(scraped), total)
    return {
        "scraped_profiles": scraped,
        "last_scraped_batch": done,
        "current_stage": marker,
        "errors": errors,
    }
