"""Stage: enrich newly discovered profiles and create candidates for those with an email."""

import logging
from typing import Any

from src.browser.actions import random_sleep
from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import EnrichmentResult, JobStatus, StageLabel, StageMarker, StageName
from src.sourcing.context import StageContext
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def enrich_and_create(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Enrich every pending URL of the current search batch.

    Each URL is attempted at most once: it joins the enriched set whatever
    the outcome. Leads without an email are discarded, not retried. The
    whole batch is processed even when the target is passed on the way.
    """
    job_id = state.job_id
    store = ctx.store
    config = ctx.config
    enricher = ctx.capabilities.enricher

    pending = []
    seen: set[str] = set()
    for result in state.current_search_results:
        if result.profile_url in state.enriched_urls or result.profile_url in seen:
            continue
        seen.add(result.profile_url)
        pending.append(result)

    enriched: set[str] = set()
    discarded = 0
    total = len(pending)
    if pending:
        logger.info("Job %s: enriching %d profiles", job_id, total)
        store.commit(job_id, current_stage=StageMarker.at(StageLabel.ENRICHING, 0, total))

    for position, result in enumerate(pending, start=1):
        url = result.profile_url
        if store.get_candidate(job_id, url) is not None:
            logger.debug("Job %s: %s is already a candidate", job_id, url)
            enriched.add(url)
        else:
            enrichment: EnrichmentResult | None
            try:
                enrichment = await enricher.enrich(url)
            except RateLimitSignal as signal:
                found = store.count_with_contact(job_id)
                update = ctx.pause_for_rate_limit(
                    job_id, StageName.ENRICH_AND_CREATE, signal,
                    enriched_urls=enriched, total_profiles_found=found,
                )
                return {**update, "enriched_urls": enriched, "candidates_with_emails": found}
            except StageFatalError as e:
                store.commit(job_id, enriched_urls=enriched)
                return {
                    **ctx.fail(job_id, StageName.ENRICH_AND_CREATE, str(e)),
                    "enriched_urls": enriched,
                }
            except Exception:
                logger.warning("Job %s: enrichment failed for %s, discarding", job_id, url, exc_info=True)
                enrichment = None

            enriched.add(url)
            if enrichment is not None and enrichment.has_contact:
                store.create_candidate(
                    job_id, url,
                    enrichment=enrichment,
                    email_source=enricher.provider_id,
                    search_result=result,
                )
                logger.debug("Job %s: created candidate %s", job_id, url)
            else:
                discarded += 1
                logger.debug("Job %s: no email for %s, discarding", job_id, url)

            if config.enrich_delay_s > 0 and position < total:
                await random_sleep(config.enrich_delay_s, config.enrich_delay_s)

        if position % config.enrich_checkpoint_every == 0 and position < total:
            store.commit(
                job_id,
                enriched_urls=enriched,
                total_profiles_found=store.count_with_contact(job_id),
                current_stage=StageMarker.at(StageLabel.ENRICHING, position, total),
            )

    found = store.count_with_contact(job_id)
    reached = found >= state.max_candidates
    exhausted = state.search_iterations >= config.max_search_iterations and found > 0
    marker = StageMarker.at(StageLabel.ENRICHMENT_COMPLETE)
    store.commit(
        job_id,
        enriched_urls=enriched,
        total_profiles_found=found,
        status=JobStatus.PROFILES_FOUND if reached or exhausted else JobStatus.SEARCHING_PROFILES,
        current_stage=marker,
        last_completed_stage=StageName.ENRICH_AND_CREATE if reached or exhausted else None,
    )
    logger.info(
        "Job %s: %d/%d candidates with email (%d discarded this batch)",
        job_id, found, state.max_candidates, discarded,
    )
    return {"enriched_urls": enriched, "candidates_with_emails": found, "current_stage": marker}
