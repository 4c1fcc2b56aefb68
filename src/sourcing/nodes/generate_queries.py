"""Stage: expand search variants into the tiered query plan."""

import logging
from typing import Any

from src.core.schemas import StageLabel, StageMarker, StageName
from src.sourcing.context import StageContext
from src.sourcing.planner import plan_queries
from src.sourcing.state import SourcingState

logger = logging.getLogger(__name__)


async def generate_queries(state: SourcingState, ctx: StageContext) -> dict[str, Any]:
    """Deterministic, so it is recomputed on resume instead of being persisted."""
    job_id = state.job_id
    queries = plan_queries(state.search_variants, state.max_candidates)
    if not queries:
        return ctx.fail(job_id, StageName.GENERATE_QUERIES, "No search variants to build queries from")

    marker = StageMarker.at(StageLabel.QUERIES_GENERATED)
    ctx.store.commit(job_id, current_stage=marker, last_completed_stage=StageName.GENERATE_QUERIES)
    logger.info(
        "Job %s: %d queries planned (%d already used)",
        job_id, len(queries), len(state.used_query_ids),
    )
    return {"search_queries": queries, "current_stage": marker}
