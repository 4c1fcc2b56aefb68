"""Workflow state record and its per-field merge policies.

Stages never mutate the state. Each returns a partial update (a plain dict)
and ``apply_update`` folds it into a new, versioned state according to the
merge policy every field declares through ``Annotated`` metadata.
"""

from enum import Enum, StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from src.core.schemas import (
    JobRequirements,
    ParsedProfile,
    ProfileSearchResult,
    ScrapedProfile,
    SearchQuery,
    SearchVariant,
    StageError,
    StageLabel,
    StageMarker,
)


class MergePolicy(Enum):
    REPLACE = "replace-if-present"
    UNION = "set-union"
    APPEND = "append"
    COUNTER = "counter"


class HaltReason(StrEnum):
    """Why the graph stopped before reaching its end node."""

    RATE_LIMITED = "RATE_LIMITED"
    FAILED = "FAILED"


_REPLACE = MergePolicy.REPLACE
_UNION = MergePolicy.UNION
_APPEND = MergePolicy.APPEND
_COUNTER = MergePolicy.COUNTER


class SourcingState(BaseModel):
    """In-memory state threaded through the workflow graph."""

    model_config = ConfigDict(frozen=True)

    job_id: Annotated[str, _REPLACE]
    user_id: Annotated[str, _REPLACE] = ""
    raw_job_description: Annotated[str, _REPLACE] = ""
    job_requirements: Annotated[JobRequirements, _REPLACE] = Field(default_factory=JobRequirements)
    max_candidates: Annotated[int, _REPLACE] = Field(default=50, ge=1)

    search_variants: Annotated[list[SearchVariant], _REPLACE] = Field(default_factory=list)
    search_queries: Annotated[list[SearchQuery], _REPLACE] = Field(default_factory=list)
    current_search_results: Annotated[list[ProfileSearchResult], _REPLACE] = Field(default_factory=list)

    discovered_urls: Annotated[frozenset[str], _UNION] = frozenset()
    enriched_urls: Annotated[frozenset[str], _UNION] = frozenset()
    used_query_ids: Annotated[frozenset[int], _UNION] = frozenset()

    search_iterations: Annotated[int, _COUNTER] = 0
    candidates_with_emails: Annotated[int, _COUNTER] = 0
    last_scraped_batch: Annotated[int, _COUNTER] = 0
    last_parsed_batch: Annotated[int, _COUNTER] = 0
    profiles_saved: Annotated[int, _COUNTER] = 0
    profiles_scored: Annotated[int, _COUNTER] = 0

    scraped_profiles: Annotated[list[ScrapedProfile], _REPLACE] = Field(default_factory=list)
    parsed_profiles: Annotated[list[ParsedProfile], _REPLACE] = Field(default_factory=list)

    errors: Annotated[list[StageError], _APPEND] = Field(default_factory=list)
    current_stage: Annotated[StageMarker, _REPLACE] = Field(
        default_factory=lambda: StageMarker.at(StageLabel.CREATED),
    )
    halt: Annotated[HaltReason | None, _REPLACE] = None

    version: int = 0


def merge_policy(field_name: str) -> MergePolicy:
    """The merge policy declared on a state field."""
    info = SourcingState.model_fields[field_name]
    for meta in info.metadata:
        if isinstance(meta, MergePolicy):
            return meta
    msg = f"State field '{field_name}' declares no merge policy"
    raise ValueError(msg)


def apply_update(state: SourcingState, update: dict[str, Any] | None) -> SourcingState:
    """Fold a partial update into ``state``, returning a new state with version + 1.

    ``None`` values mean "not provided" under every policy. Unknown fields
    (and ``version`` itself) are rejected.
    """
    if not update:
        return state

    changes: dict[str, Any] = {}
    for name, value in update.items():
        if name == "version" or name not in SourcingState.model_fields:
            msg = f"Unknown state field '{name}'"
            raise ValueError(msg)
        if value is None:
            continue
        policy = merge_policy(name)
        current = getattr(state, name)
        if policy is MergePolicy.UNION:
            changes[name] = current | frozenset(value)
        elif policy is MergePolicy.APPEND:
            changes[name] = [*current, *value]
        else:
            changes[name] = value

    merged = {name: getattr(state, name) for name in SourcingState.model_fields}
    merged.update(changes)
    merged["version"] = state.version + 1
    return SourcingState.model_validate(merged)
