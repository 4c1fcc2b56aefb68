"""Stage: clean scraped payloads and extract structured profiles."""

import asyncio
import logging
from typing import Any

from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import (
    JobStatus,
    ParsedProfile,
    StageError,
    StageLabel,
    StageMarker,
    StageName,
    StructuredProfile,
)
from src.sourcing.checkpoint import BATCH_PARSE
from src.sourcing.context import StageContext
from src.sourcing.profile_cleaner import clean_profile, is_valid_profile
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def parse_candidates(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    job_id = state.job_id
    store = ctx.store
    size = ctx.config.parse_batch_size

    cleaned: list[StructuredProfile] = []
    for scraped in state.scraped_profiles:
        profile = clean_profile(scraped)
        if is_valid_profile(profile):
            cleaned.append(profile)
        else:
            logger.debug("Job %s: dropping incomplete profile %s", job_id, scraped.url)

    batches = [cleaned[i:i + size] for i in range(0, len(cleaned), size)]
    total = len(batches)
    done = min(state.last_parsed_batch, total)
    parsed: list[ParsedProfile] = list(state.parsed_profiles)
    errors: list[StageError] = []

    if done:
        logger.info("Job %s: resuming parse after batch %d of %d", job_id, done, total)
    store.commit(job_id, status=JobStatus.PARSING_PROFILES, parse_batch_total=total)

    for index in range(done + 1, total + 1):
        batch = batches[index - 1]
        marker = StageMarker.at(StageLabel.PARSING_BATCH, index, total)
        store.commit(job_id, current_stage=marker)

        outcomes = await asyncio.gather(
            *(ctx.capabilities.parser.parse(profile) for profile in batch),
            return_exceptions=True,
        )
        batch_parsed: list[ParsedProfile] = []
        signal: RateLimitSignal | None = None
        fatal: StageFatalError | None = None
        for profile, outcome in zip(batch, outcomes):
            if isinstance(outcome, RateLimitSignal):
                signal = signal or outcome
            elif isinstance(outcome, StageFatalError):
                fatal = fatal or outcome
            elif isinstance(outcome, BaseException):
                logger.warning("Job %s: parsing %s failed: %s", job_id, profile.profile_url, outcome)
                errors.append(
                    StageError(
                        stage=StageName.PARSE_CANDIDATES,
                        message=f"Parsing {profile.profile_url} failed: {outcome}",
                    ),
                )
                batch_parsed.append(ParsedProfile.fallback(profile))
            else:
                batch_parsed.append(outcome.model_copy(update={"profile_url": profile.profile_url}))

        if fatal is not None:
            return ctx.fail(job_id, StageName.PARSE_CANDIDATES, str(fatal))
        if signal is not None:
            # the interrupted batch is parsed again in full after the reset
            update = ctx.pause_for_rate_limit(job_id, StageName.PARSE_CANDIDATES, signal)
            return {
                **update,
                "parsed_profiles": parsed,
                "last_parsed_batch": done,
                "errors": [*errors, *update["errors"]],
            }

        parsed.extend(batch_parsed)
        store.commit_batch(
            job_id, BATCH_PARSE, index, batch_parsed,
            last_parsed_batch=index,
            profiles_parsed=len(parsed),
        )
        done = index
        logger.info("Job %s: parsed batch %d/%d", job_id, index, total)

    marker = StageMarker.at(StageLabel.PARSING_COMPLETE)
    store.commit(
        job_id,
        current_stage=marker,
        profiles_parsed=len(parsed),
        last_completed_stage=StageName.PARSE_CANDIDATES,
    )
    fallbacks = sum(1 for p in parsed if p.source == "fallback")
    logger.info("Job %s: %d profiles parsed (%d via fallback)", job_id, len(parsed), fallbacks)
    return {
        "parsed_profiles": parsed,
        "last_parsed_batch": done,
        "current_stage": marker,
        "errors": errors,
    }
