"""Stage: turn the raw job description into AI search variants."""

import logging
from typing import Any

from src.core.errors import RateLimitSignal
from src.core.schemas import JobStatus, StageLabel, StageMarker, StageName
from src.sourcing.context import StageContext
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def format_jd(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    job_id = state.job_id
    done = StageMarker.at(StageLabel.JD_FORMATTED)

    if state.search_variants:
        logger.info("Job %s: %d search variants already present, skipping", job_id, len(state.search_variants))
        ctx.store.commit(job_id, last_completed_stage=StageName.FORMAT_JD)
        return {"current_stage": done}

    working = StageMarker.at(StageLabel.FORMATTING_JD)
    ctx.store.commit(job_id, status=JobStatus.FORMATTING_JD, current_stage=working)
    logger.info("Job %s: formatting job description", job_id)

    try:
        variants = await ctx.capabilities.formatter.format(
            state.raw_job_description, state.job_requirements, state.max_candidates,
        )
    except RateLimitSignal as signal:
        return ctx.pause_for_rate_limit(job_id, StageName.FORMAT_JD, signal)
    except Exception as e:
        return ctx.fail(job_id, StageName.FORMAT_JD, f"Job description formatting failed: {e}")

    if not variants:
        return ctx.fail(job_id, StageName.FORMAT_JD, "Job description formatting produced no search variants")

    ctx.store.commit(
        job_id,
        search_variants=variants,
        status=JobStatus.JD_FORMATTED,
        current_stage=done,
        last_completed_stage=StageName.FORMAT_JD,
    )
    logger.info("Job %s: %d search variants generated", job_id, len(variants))
    return {"search_variants": variants, "current_stage": done}
