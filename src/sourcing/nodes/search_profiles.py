"""Stage: one search iteration over the tiered query plan."""

import logging
import math
from typing import Any

from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import (
    JobStatus,
    ProfileSearchResult,
    QueryTier,
    StageError,
    StageLabel,
    StageMarker,
    StageName,
)
from src.sourcing.context import StageContext
from src.sourcing.planner import remaining_queries, select_next
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def search_profiles(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Run up to ``max_queries_per_iteration`` queries and collect new profile URLs.

    The first query is picked tier by tier. If it yields fewer than
    ``min_new_results`` new URLs (or fails), another query is tried in the
    same iteration, preferring the same tier. Loop termination belongs to
    the workflow graph.
    """
    job_id = state.job_id
    config = ctx.config

    if state.candidates_with_emails >= state.max_candidates:
        marker = StageMarker.at(StageLabel.SEARCH_NOT_NEEDED)
        logger.info(
            "Job %s: target already met (%d/%d), no search needed",
            job_id, state.candidates_with_emails, state.max_candidates,
        )
        ctx.store.commit(job_id, current_stage=marker, last_completed_stage=StageName.SEARCH_PROFILES)
        return {"current_search_results": [], "current_stage": marker}

    pending = [r for r in state.current_search_results if r.profile_url not in state.enriched_urls]
    if pending:
        marker = StageMarker.at(StageLabel.SEARCH_PENDING_URLS, len(pending))
        logger.info("Job %s: %d discovered URLs still to enrich, skipping search", job_id, len(pending))
        ctx.store.commit(job_id, status=JobStatus.SEARCHING_PROFILES, current_stage=marker)
        return {"current_search_results": pending, "current_stage": marker}

    iteration = state.search_iterations + 1
    marker = StageMarker.at(StageLabel.SEARCH_ITERATION, iteration)
    ctx.store.commit(job_id, status=JobStatus.SEARCHING_PROFILES, current_stage=marker)

    remaining = state.max_candidates - state.candidates_with_emails
    max_items = max(1, math.ceil(remaining * config.search_overfetch))
    discovered = set(state.discovered_urls)
    used = set(state.used_query_ids)
    found: list[ProfileSearchResult] = []
    errors: list[StageError] = []
    prefer: QueryTier | None = None
    executed = 0

    logger.info(
        "Job %s: search iteration %d, need %d more (fetching up to %d), %d queries left",
        job_id, iteration, remaining, max_items,
        len(remaining_queries(state.search_queries, used)),
    )

    for _ in range(config.max_queries_per_iteration):
        query = select_next(state.search_queries, used, prefer)
        if query is None:
            logger.info("Job %s: all search queries used", job_id)
            break
        used.add(query.query_id)
        logger.info("Job %s: query %d (%s) %s", job_id, query.query_id, query.kind, query.description)

        try:
            results = await ctx.capabilities.searcher.search(query.model_copy(update={"max_items": max_items}))
        except RateLimitSignal as signal:
            # the query never ran: it is retried after the reset, and an iteration
            # in which no query ran is not counted
            used.discard(query.query_id)
            progress = {
                "discovered_urls": discovered,
                "used_query_ids": used,
                "search_iterations": iteration if executed else state.search_iterations,
            }
            update = ctx.pause_for_rate_limit(
                job_id, StageName.SEARCH_PROFILES, signal,
                last_completed_stage=StageName.SEARCH_PROFILES, **progress,
            )
            return {
                **update,
                **progress,
                "current_search_results": found,
                "errors": [*errors, *update["errors"]],
            }
        except StageFatalError as e:
            ctx.store.commit(job_id, discovered_urls=discovered, used_query_ids=used)
            return ctx.fail(job_id, StageName.SEARCH_PROFILES, str(e))
        except Exception as e:
            logger.warning("Job %s: query %d failed", job_id, query.query_id, exc_info=True)
            errors.append(
                StageError(stage=StageName.SEARCH_PROFILES, message=f"Query {query.query_id} failed: {e}"),
            )
            results = []

        executed += 1
        new = 0
        for result in results:
            if not result.profile_url or result.profile_url in discovered:
                continue
            discovered.add(result.profile_url)
            found.append(result)
            new += 1
        logger.info("Job %s: query %d returned %d results, %d new", job_id, query.query_id, len(results), new)

        if new >= config.min_new_results:
            break
        prefer = query.tier

    fields: dict[str, Any] = {
        "discovered_urls": discovered,
        "used_query_ids": used,
        "search_iterations": iteration,
        "last_completed_stage": StageName.SEARCH_PROFILES,
    }
    if errors:
        fields["error_message"] = "; ".join(e.message for e in errors)
    ctx.store.commit(job_id, **fields)

    return {
        "current_search_results": found,
        "discovered_urls": discovered,
        "used_query_ids": used,
        "search_iterations": iteration,
        "current_stage": marker,
        "errors": errors,
    }
