"""The sourcing workflow as a LangGraph state graph.

format_jd -> generate_queries -> search_profiles -> enrich_and_create
  -> (scrape_candidates -> parse_candidates -> update_candidates -> score_candidates)
   | search_profiles (loop)
   | handle_no_candidates

Every stage returns a partial update that is folded into the single
``SourcingState`` channel by ``apply_update``. After every stage the graph
ends early if the state carries a halt reason (rate limit or failure).
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Annotated, Any, Literal, TypedDict

from langgraph.graph import END, START, StateGraph

from src.core.config import WorkflowConfig
from src.core.schemas import StageName
from src.sourcing.context import StageContext
from src.sourcing.nodes.enrich_and_create import enrich_and_create
from src.sourcing.nodes.format_jd import format_jd
from src.sourcing.nodes.generate_queries import generate_queries
from src.sourcing.nodes.handle_no_candidates import handle_no_candidates
from src.sourcing.nodes.parse_candidates import parse_candidates
from src.sourcing.nodes.score_candidates import score_candidates
from src.sourcing.nodes.scrape_candidates import scrape_candidates
from src.sourcing.nodes.search_profiles import search_profiles
from src.sourcing.nodes.update_candidates import update_candidates
from src.sourcing.state import SourcingState, apply_update

logger = logging.getLogger(__name__)

Stage = Callable[[SourcingState, StageContext], Awaitable[dict[str, Any]]]

STAGES: dict[StageName, Stage] = {
    StageName.FORMAT_JD: format_jd,
    StageName.GENERATE_QUERIES: generate_queries,
    StageName.SEARCH_PROFILES: search_profiles,
    StageName.ENRICH_AND_CREATE: enrich_and_create,
    StageName.SCRAPE_CANDIDATES: scrape_candidates,
    StageName.PARSE_CANDIDATES: parse_candidates,
    StageName.UPDATE_CANDIDATES: update_candidates,
    StageName.SCORE_CANDIDATES: score_candidates,
    StageName.HANDLE_NO_CANDIDATES: handle_no_candidates,
}

# Static successor of each stage; the branch after enrichment is conditional.
_NEXT: dict[StageName, StageName | None] = {
    StageName.FORMAT_JD: StageName.GENERATE_QUERIES,
    StageName.GENERATE_QUERIES: StageName.SEARCH_PROFILES,
    StageName.SEARCH_PROFILES: StageName.ENRICH_AND_CREATE,
    StageName.SCRAPE_CANDIDATES: StageName.PARSE_CANDIDATES,
    StageName.PARSE_CANDIDATES: StageName.UPDATE_CANDIDATES,
    StageName.UPDATE_CANDIDATES: StageName.SCORE_CANDIDATES,
    StageName.SCORE_CANDIDATES: None,
    StageName.HANDLE_NO_CANDIDATES: None,
}

Route = Literal["halt", "scrape", "no_candidates", "search_again"]


def fold_update(current: SourcingState, update: SourcingState | dict[str, Any]) -> SourcingState:
    """Channel reducer: a full state replaces, a partial update is merged."""
    if isinstance(update, SourcingState):
        return update
    return apply_update(current, update)


class GraphState(TypedDict):
    state: Annotated[SourcingState, fold_update]
    start_at: str


def route_after_enrichment(state: SourcingState, config: WorkflowConfig) -> Route:
    """The single branch point of the workflow."""
    if state.halt is not None:
        return "halt"
    if state.candidates_with_emails >= state.max_candidates:
        return "scrape"
    if state.search_iterations >= config.max_search_iterations:
        return "scrape" if state.candidates_with_emails > 0 else "no_candidates"
    return "search_again"


def _node(stage: StageName, fn: Stage, ctx: StageContext) -> Callable[[GraphState], Awaitable[dict[str, Any]]]:
    async def run(graph_state: GraphState) -> dict[str, Any]:
        state = graph_state["state"]
        logger.info("Job %s: stage %s", state.job_id, stage)
        return {"state": await fn(state, ctx)}

    return run


def _halt_or_continue(graph_state: GraphState) -> Literal["halt", "continue"]:
    return "halt" if graph_state["state"].halt is not None else "continue"


def _entry(graph_state: GraphState) -> str:
    return graph_state["start_at"]


def build_sourcing_workflow(ctx: StageContext) -> Any:
    """Build and compile the workflow graph bound to one run's context.

    A fresh graph per run keeps stage dependencies out of shared state.
    """
    workflow = StateGraph(GraphState)
    for stage, fn in STAGES.items():
        workflow.add_node(stage.value, _node(stage, fn, ctx))

    workflow.add_conditional_edges(START, _entry, {s.value: s.value for s in StageName})

    for stage, successor in _NEXT.items():
        workflow.add_conditional_edges(
            stage.value,
            _halt_or_continue,
            {"halt": END, "continue": successor.value if successor else END},
        )

    workflow.add_conditional_edges(
        StageName.ENRICH_AND_CREATE.value,
        lambda graph_state: route_after_enrichment(graph_state["state"], ctx.config),
        {
            "halt": END,
            "scrape": StageName.SCRAPE_CANDIDATES.value,
            "no_candidates": StageName.HANDLE_NO_CANDIDATES.value,
            "search_again": StageName.SEARCH_PROFILES.value,
        },
    )
    return workflow.compile()


async def run_workflow(
    state: SourcingState,
    ctx: StageContext,
    *,
    start_at: StageName = StageName.FORMAT_JD,
) -> SourcingState:
    """Run the graph from ``start_at`` until it ends or halts.

    The job id is the continuation key: every durable checkpoint of the run
    is written under it. Raises ``GraphRecursionError`` past
    ``max_graph_steps``.
    """
    graph = build_sourcing_workflow(ctx)
    logger.info("Job %s: running workflow from %s", state.job_id, start_at)
    result = await graph.ainvoke(
        {"state": state, "start_at": start_at.value},
        config={
            "recursion_limit": ctx.config.max_graph_steps,
            "configurable": {"thread_id": state.job_id},
        },
    )
    final: SourcingState = result["state"]
    logger.info(
        "Job %s: workflow stopped at %s (halt=%s)",
        final.job_id, final.current_stage, final.halt,
    )
    return final
