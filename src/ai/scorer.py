"""LLM-assisted rubric scoring of candidates against a job."""

import asyncio
import logging
from typing import Any

from src.capabilities.base import CandidateScorer
from src.core.schemas import CandidateRecord, CandidateScore, JobRequirements
from src.llm import parse_json_response
from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

# Rubric dimension -> maximum points
RUBRIC: dict[str, int] = {
    "skills_score": 30,
    "experience_score": 25,
    "industry_score": 20,
    "title_score": 15,
    "nice_to_have_score": 10,
}

_READINESS = ("READY_TO_INTERVIEW", "INTERVIEW_WITH_VALIDATION", "NOT_RECOMMENDED")
_SENIORITY = ("Entry", "Mid", "Senior", "Lead", "Executive")

_SCORING_SYSTEM_PROMPT = (
    "You are a senior technical recruiter evaluating candidate-job fit.\n\n"
    "Score the candidate on this rubric (points):\n"
    "  skills_score 0-30: required skills present in the profile\n"
    "  experience_score 0-25: relevant years and depth\n"
    "  industry_score 0-20: industry and domain alignment\n"
    "  title_score 0-15: current and past titles versus the role\n"
    "  nice_to_have_score 0-10: nice-to-have skills present\n"
    "total_score is the sum of the five.\n\n"
    "interview_readiness is one of READY_TO_INTERVIEW (total >= 75 and no red flags), "
    "INTERVIEW_WITH_VALIDATION (50-74 or gaps worth probing) or NOT_RECOMMENDED.\n"
    "seniority_level is one of Entry, Mid, Senior, Lead, Executive.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation):\n"
    '{"skills_score": <n>, "experience_score": <n>, "industry_score": <n>, '
    '"title_score": <n>, "nice_to_have_score": <n>, "total_score": <n>, '
    '"reasoning": "<2-3 sentences>", "matched_skills": [], "missing_skills": [], '
    '"bonus_skills": [], "relevant_years": <int>, "seniority_level": "...", '
    '"industry_match": "...", "interview_readiness": "...", '
    '"interview_readiness_reason": "...", "interview_confidence_score": <0-100>, '
    '"candidate_summary": "...", "key_strengths": [], "critical_gaps": [], '
    '"red_flags": [], "suggested_questions": []}'
)


def _build_user_prompt(candidate: CandidateRecord, description: str, requirements: JobRequirements) -> str:
    """Assemble the user prompt from the job and the candidate's parsed profile."""
    job_section = (
        "JOB\n"
        f"Description:\n{description}\n"
        f"Required skills: {requirements.required_skills or 'not specified'}\n"
        f"Nice to have: {requirements.nice_to_have or 'not specified'}\n"
        f"Experience level: {requirements.years_of_experience or 'not specified'}\n"
        f"Industry: {requirements.industry or 'not specified'}\n"
        f"Location: {requirements.location or 'not specified'}\n"
    )

    profile = candidate.profile
    if profile is None:
        return (
            f"{job_section}\nCANDIDATE\n"
            f"Name: {candidate.full_name}\n"
            f"Headline: {candidate.headline or 'not provided'}\n"
            f"Location: {candidate.location or 'not provided'}\n"
        )

    experience = "\n".join(
        f"  - {e.title} at {e.company or 'unknown'} ({e.duration or 'n/a'})" for e in profile.experience
    )
    years = f"{profile.experience_years:g}" if profile.experience_years is not None else "not specified"
    candidate_section = (
        "CANDIDATE\n"
        f"Name: {profile.full_name or candidate.full_name}\n"
        f"Headline: {profile.headline or 'not provided'}\n"
        f"Current: {profile.current_position or 'n/a'} at {profile.current_company or 'n/a'}\n"
        f"Location: {profile.location or 'not provided'}\n"
        f"Years of experience: {years}\n"
        f"Skills: {', '.join(profile.skills) or 'not listed'}\n"
        f"Experience:\n{experience or '  not listed'}\n"
    )
    if profile.about:
        candidate_section += f"About:\n{profile.about}\n"
    return f"{job_section}\n{candidate_section}"


def _parse_llm_score(data: dict[str, Any]) -> CandidateScore:
    """Build a CandidateScore from model output.

    Sub-scores are clamped to their rubric caps and the total is recomputed
    from them. Raises ValueError when a sub-score is missing or not numeric.
    """
    scores: dict[str, float] = {}
    for key, cap in RUBRIC.items():
        if key not in data:
            msg = f"LLM response missing '{key}' field"
            raise ValueError(msg)
        try:
            scores[key] = max(0.0, min(float(cap), float(data[key])))
        except (TypeError, ValueError) as e:
            msg = f"LLM response has non-numeric '{key}': {data[key]!r}"
            raise ValueError(msg) from e

    extras = {
        k: v for k, v in data.items()
        if k in CandidateScore.model_fields and k not in RUBRIC and k != "total_score" and v is not None
    }
    if extras.get("interview_readiness") not in _READINESS:
        extras.pop("interview_readiness", None)
    if extras.get("seniority_level") not in _SENIORITY:
        extras.pop("seniority_level", None)
    if "interview_confidence_score" in extras:
        try:
            extras["interview_confidence_score"] = max(0.0, min(100.0, float(extras["interview_confidence_score"])))
        except (TypeError, ValueError):
            extras.pop("interview_confidence_score")
    if not isinstance(extras.get("relevant_years"), int) or extras["relevant_years"] < 0:
        extras.pop("relevant_years", None)

    total = round(min(100.0, sum(scores.values())), 2)
    return CandidateScore.model_validate({**extras, **scores, "total_score": total})


class LLMCandidateScorer(CandidateScorer):
    """Scores one candidate per LLM call. Errors propagate to the caller."""

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    async def score(
        self,
        candidate: CandidateRecord,
        description: str,
        requirements: JobRequirements,
    ) -> CandidateScore:
        raw = await asyncio.to_thread(
            self._provider.complete,
            _build_user_prompt(candidate, description, requirements),
            self._model,
            system=_SCORING_SYSTEM_PROMPT,
        )
        score = _parse_llm_score(parse_json_response(raw))
        logger.debug("Scored %s: %.1f", candidate.profile_url, score.total_score)
        return score
