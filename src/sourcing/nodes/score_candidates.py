"""Stage: score every unscored candidate with bounded concurrency."""

import asyncio
import logging
from typing import Any

from src.capabilities.base import CandidateScorer
from src.core.errors import RateLimitSignal
from src.core.schemas import (
    CandidateRecord,
    CandidateScore,
    JobRequirements,
    JobStatus,
    StageError,
    StageLabel,
    StageMarker,
    StageName,
)
from src.sourcing.context import StageContext
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def _score_one(
    scorer: CandidateScorer,
    semaphore: asyncio.Semaphore,
    candidate: CandidateRecord,
    description: str,
    requirements: JobRequirements,
) -> CandidateScore:
    async with semaphore:
        return await scorer.score(candidate, description, requirements)


async def score_candidates(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Score in fixed-size batches until no unscored candidate remains.

    A candidate whose scoring fails is left unscored and skipped for the
    rest of this run, so the loop always terminates.
    """
    job_id = state.job_id
    store = ctx.store
    config = ctx.config
    semaphore = asyncio.Semaphore(config.score_concurrency)
    failed_ids: set[int] = set()
    errors: list[StageError] = []
    candidates_total = store.count_candidates(job_id)

    store.commit(job_id, status=JobStatus.SCORING_PROFILES)
    scored = store.count_candidates(job_id, is_scored=True)

    while True:
        batch = store.list_candidates(
            job_id, limit=config.score_batch_size, is_scored=False, exclude_ids=failed_ids,
        )
        if not batch:
            break

        outcomes = await asyncio.gather(
            *(
                _score_one(
                    ctx.capabilities.scorer, semaphore, c,
                    state.raw_job_description, state.job_requirements,
                )
                for c in batch
            ),
            return_exceptions=True,
        )
        signal: RateLimitSignal | None = None
        for candidate, outcome in zip(batch, outcomes):
            if isinstance(outcome, RateLimitSignal):
                signal = signal or outcome
            elif isinstance(outcome, BaseException):
                failed_ids.add(candidate.id)
                logger.warning("Job %s: scoring %s failed: %s", job_id, candidate.profile_url, outcome)
                errors.append(
                    StageError(
                        stage=StageName.SCORE_CANDIDATES,
                        message=f"Scoring {candidate.profile_url} failed: {outcome}",
                    ),
                )
            else:
                store.save_score(candidate.id, outcome)

        scored = store.count_candidates(job_id, is_scored=True)
        if signal is not None:
            update = ctx.pause_for_rate_limit(
                job_id, StageName.SCORE_CANDIDATES, signal, profiles_scored=scored,
            )
            return {**update, "profiles_scored": scored, "errors": [*errors, *update["errors"]]}

        store.commit(
            job_id,
            profiles_scored=scored,
            current_stage=StageMarker.at(StageLabel.SCORED, scored, candidates_total),
        )
        logger.info("Job %s: scored %d/%d candidates", job_id, scored, candidates_total)

    marker = StageMarker.at(StageLabel.SCORING_COMPLETE)
    store.mark_terminal(
        job_id,
        JobStatus.COMPLETED,
        current_stage=marker,
        profiles_scored=scored,
        last_completed_stage=StageName.SCORE_CANDIDATES,
    )
    if failed_ids:
        logger.warning("Job %s: %d candidates could not be scored", job_id, len(failed_ids))
    return {"profiles_scored": scored, "current_stage": marker, "errors": errors}
