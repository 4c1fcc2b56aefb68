"""LLM-backed job description formatter producing LinkedIn search variants."""

import asyncio
import logging
import math

from pydantic import BaseModel, Field

from src.ai.linkedin_mappings import industry_ids, seniority_level_ids, years_of_experience_ids
from src.capabilities.base import JobFormatter
from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import JobRequirements, SearchVariant
from src.llm import parse_json_response
from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

VARIANT_COUNT = 3
RESULTS_PER_PAGE = 25

_FORMATTER_SYSTEM_PROMPT = (
    "You are creating diverse LinkedIn search strategies to find candidates "
    "for a job posting.\n\n"
    "Generate EXACTLY 3 DIFFERENT search variants. Each variant targets the same "
    "kind of candidate through a different keyword strategy.\n\n"
    "For each variant:\n"
    '  - search_query: 2-3 critical skills joined with " AND " '
    '(e.g. "React AND TypeScript AND Redux")\n'
    "  - current_job_titles: 3-5 related job titles, different from the other variants\n"
    "  - reasoning: one sentence on this variant's approach\n\n"
    "Also return locations (shared by all variants) in LinkedIn's format, e.g. "
    '"San Francisco" -> "San Francisco Bay Area", "NYC" -> "New York City Metropolitan Area".\n'
    "Do not over-filter: candidates are scored later.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation):\n"
    '{"locations": ["..."], "variants": [{"search_query": "...", '
    '"current_job_titles": ["..."], "reasoning": "..."}]}'
)


class _VariantDraft(BaseModel):
    search_query: str = ""
    current_job_titles: list[str] = Field(default_factory=list)
    reasoning: str = ""


class _FormatterResponse(BaseModel):
    locations: list[str] = Field(default_factory=list)
    variants: list[_VariantDraft] = Field(min_length=1)


def _build_user_prompt(description: str, requirements: JobRequirements) -> str:
    return (
        f"Job Description:\n{description}\n\n"
        "Job Requirements:\n"
        f"- Required Skills: {requirements.required_skills or 'Not specified'}\n"
        f"- Nice to Have: {requirements.nice_to_have or 'Not specified'}\n"
        f"- Location: {requirements.location or 'Not specified'}\n"
        f"- Experience Level: {requirements.years_of_experience or 'Not specified'}\n\n"
        "Generate 3 DIFFERENT LinkedIn search variants."
    )


def _common_filters(requirements: JobRequirements, max_candidates: int) -> dict[str, object]:
    return {
        "years_of_experience_ids": years_of_experience_ids(requirements.years_of_experience),
        "seniority_level_ids": seniority_level_ids(requirements.years_of_experience),
        "industry_ids": industry_ids(requirements.industry),
        "take_pages": max(1, min(10, math.ceil(max_candidates / RESULTS_PER_PAGE))),
    }


def skill_variants(requirements: JobRequirements, max_candidates: int) -> list[SearchVariant]:
    """Three basic variants built from the required skills alone.

    Returns an empty list when no skills are given.
    """
    skills = requirements.required_skill_list()
    if not skills:
        return []
    common = _common_filters(requirements, max_candidates)
    locations = [requirements.location] if requirements.location else []
    drafts = [
        (" AND ".join(skills[:3]), "Primary skills with AND logic"),
        (" AND ".join(skills[1:4]) or " AND ".join(skills[:3]), "Alternative skill combination"),
        (" OR ".join(skills[:3]), "Broad skill search with OR"),
    ]
    return [
        SearchVariant(search_query=query, reasoning=reason, locations=locations, **common)  # type: ignore[arg-type]
        for query, reason in drafts
    ]


class LLMJobFormatter(JobFormatter):
    """Asks an LLM for three search variants and attaches LinkedIn filter ids.

    If the model call or its output fails, falls back to skill-based variants.
    With no skills to fall back on, the error propagates. Rate limits and
    missing credentials always propagate.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    async def format(
        self,
        description: str,
        requirements: JobRequirements,
        max_candidates: int,
    ) -> list[SearchVariant]:
        try:
            raw = await asyncio.to_thread(
                self._provider.complete,
                _build_user_prompt(description, requirements),
                self._model,
                system=_FORMATTER_SYSTEM_PROMPT,
            )
            response = _FormatterResponse.model_validate(parse_json_response(raw))
        except (RateLimitSignal, StageFatalError):
            raise
        except Exception:
            fallback = skill_variants(requirements, max_candidates)
            if not fallback:
                raise
            logger.warning("Formatter output unusable, using skill-based variants", exc_info=True)
            return fallback

        common = _common_filters(requirements, max_candidates)
        variants = [
            SearchVariant(
                search_query=draft.search_query,
                current_job_titles=draft.current_job_titles,
                locations=response.locations,
                reasoning=draft.reasoning,
                **common,  # type: ignore[arg-type]
            )
            for draft in response.variants[:VARIANT_COUNT]
        ]
        for number, variant in enumerate(variants, start=1):
            logger.info("Variant %d: %s (%s)", number, variant.search_query, variant.reasoning)
        return variants
