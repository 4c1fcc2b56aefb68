"""Stage: finish a job that found no contactable candidates, with a diagnostic report."""

import logging
from typing import Any

from src.core.schemas import JobRequirements, JobStatus, StageError, StageLabel, StageMarker, StageName
from src.sourcing.context import StageContext
from src.sourcing.planner import remaining_queries
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)

MAX_FOCUSED_SKILLS = 3


def suggest_relaxations(requirements: JobRequirements, *, discovered: int, enriched: int) -> list[str]:
    """Concrete ways to widen the search, derived from the job's requirements."""
    suggestions: list[str] = []
    skills = requirements.required_skill_list()
    if len(skills) > MAX_FOCUSED_SKILLS:
        focus = ", ".join(skills[:MAX_FOCUSED_SKILLS])
        suggestions.append(f"Reduce required skills to the core few ({focus}) and move the rest to nice-to-have")
    elif skills:
        suggestions.append("Review required skills, they may be too specific")
    if requirements.location:
        suggestions.append(f"Broaden the location beyond '{requirements.location}' or accept remote candidates")
    if requirements.years_of_experience:
        suggestions.append(f"Consider a lower experience level than '{requirements.years_of_experience}'")
    if requirements.industry:
        suggestions.append(f"Include industries adjacent to '{requirements.industry}' with transferable skills")
    suggestions.append("Expand the list of acceptable job titles")
    if discovered and enriched >= discovered:
        suggestions.append(
            f"{discovered} profiles were found but none had a discoverable email; "
            "consider sourcing without contact details",
        )
    return suggestions


def build_report(state: SourcingState) -> str:
    """Markdown summary of what was tried and what to change."""
    tried = [q for q in state.search_queries if q.query_id in state.used_query_ids]
    untried = remaining_queries(state.search_queries, state.used_query_ids)
    suggestions = suggest_relaxations(
        state.job_requirements,
        discovered=len(state.discovered_urls),
        enriched=len(state.enriched_urls),
    )

    lines = [
        "# No Candidates Found",
        "",
        f"After {state.search_iterations} search iterations, no candidates with contact details were found.",
        "",
        f"- Profiles discovered: {len(state.discovered_urls)}",
        f"- Profiles enriched: {len(state.enriched_urls)}",
        f"- Queries used: {len(tried)} of {len(state.search_queries)}",
        "",
        "## Search Strategies Attempted",
    ]
    if tried:
        lines.extend(
            f"{n}. [{q.kind}] {q.description}: {q.search_query or 'title-based search'}"
            for n, q in enumerate(tried, start=1)
        )
    else:
        lines.append("None.")
    if untried:
        lines += ["", "## Strategies Not Attempted"]
        lines.extend(f"- [{q.kind}] {q.description}: {q.search_query or 'title-based search'}" for q in untried)
    lines += ["", "## Recommendations"]
    lines.extend(f"{n}. {s}" for n, s in enumerate(suggestions, start=1))
    lines += [
        "",
        "## Next Steps",
        "- Adjust the requirements above and create a new sourcing job",
        "- Try a manual LinkedIn search with the queries above",
    ]
    return "\n".join(lines)


async def handle_no_candidates(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Complete the job with zero counts. This is an empty success, not a failure."""
    job_id = state.job_id
    report = build_report(state)
    marker = StageMarker.at(StageLabel.NO_CANDIDATES_FOUND)
    ctx.store.mark_terminal(
        job_id,
        JobStatus.COMPLETED,
        current_stage=marker,
        last_completed_stage=StageName.HANDLE_NO_CANDIDATES,
        error_message=report,
        total_profiles_found=0,
        profiles_scraped=0,
        profiles_parsed=0,
        profiles_saved=0,
        profiles_scored=0,
    )
    logger.info("Job %s: no candidates found after %d iterations", job_id, state.search_iterations)
    return {
        "current_stage": marker,
        "errors": [
            StageError(
                stage=StageName.HANDLE_NO_CANDIDATES,
                message="No candidates found after exhausting all search strategies",
            ),
        ],
    }
