"""Tiered search query planning.

Each AI search variant expands into three queries of decreasing precision:

  1. precise: the variant verbatim
  2. broad: industry filter dropped, job titles truncated
  3. alternative: AND-joins rewritten as OR, pagination widened

Queries are consumed tier by tier across all variants, so every precise
query runs before any broad one.
"""

import logging
import re
from collections.abc import Collection, Sequence

from src.core.schemas import QueryTier, SearchQuery, SearchVariant

logger = logging.getLogger(__name__)

BROAD_TITLE_LIMIT = 5
ALTERNATIVE_MIN_PAGES = 4

_AND_RE = re.compile(r"\s+AND\s+")


def plan_queries(variants: Sequence[SearchVariant], max_candidates: int) -> list[SearchQuery]:
    """Expand variants into tiered queries with stable sequential ids.

    Ids are assigned variant-major, tier-minor, so the same variants always
    yield the same ids.
    """
    queries: list[SearchQuery] = []
    next_id = 1
    for number, variant in enumerate(variants, start=1):
        for tier in QueryTier:
            queries.append(_build_query(next_id, tier, number, variant, max_candidates))
            next_id += 1
    logger.debug("Planned %d queries from %d variants", len(queries), len(variants))
    return queries


def _build_query(
    query_id: int,
    tier: QueryTier,
    number: int,
    variant: SearchVariant,
    max_candidates: int,
) -> SearchQuery:
    common = {
        "query_id": query_id,
        "tier": tier,
        "variant": number,
        "locations": list(variant.locations),
        "years_of_experience_ids": list(variant.years_of_experience_ids),
        "seniority_level_ids": list(variant.seniority_level_ids),
        "max_items": max_candidates,
    }
    if tier is QueryTier.PRECISE:
        return SearchQuery(
            **common,
            description=f"Variant {number} - precise search with all filters",
            search_query=variant.search_query,
            current_job_titles=list(variant.current_job_titles),
            industry_ids=list(variant.industry_ids),
            take_pages=variant.take_pages,
        )
    if tier is QueryTier.BROAD:
        return SearchQuery(
            **common,
            description=f"Variant {number} - broad search without industry filter",
            search_query=variant.search_query,
            current_job_titles=variant.current_job_titles[:BROAD_TITLE_LIMIT],
            take_pages=variant.take_pages,
        )
    return SearchQuery(
        **common,
        description=f"Variant {number} - alternative keywords with OR logic",
        search_query=_AND_RE.sub(" OR ", variant.search_query),
        current_job_titles=list(variant.current_job_titles),
        take_pages=max(variant.take_pages + 1, ALTERNATIVE_MIN_PAGES),
    )


def select_next(
    queries: Sequence[SearchQuery],
    used: Collection[int],
    prefer_tier: QueryTier | None = None,
) -> SearchQuery | None:
    """Pick the next unused query.

    A preferred tier that still has unused queries wins; otherwise tiers are
    scanned from most to least precise. Within a tier the lowest id wins.
    Returns None when every query has been used.
    """
    unused = sorted((q for q in queries if q.query_id not in used), key=lambda q: q.query_id)
    if not unused:
        return None

    if prefer_tier is not None:
        for query in unused:
            if query.tier == prefer_tier:
                return query

    for tier in QueryTier:
        for query in unused:
            if query.tier == tier:
                return query
    return None


def remaining_queries(queries: Sequence[SearchQuery], used: Collection[int]) -> list[SearchQuery]:
    return [q for q in queries if q.query_id not in used]
