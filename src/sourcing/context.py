"""Dependencies handed to every workflow stage."""

import logging
from dataclasses import dataclass
from typing import Any

from src.capabilities.base import (
    CandidateScorer,
    ContactEnricher,
    JobFormatter,
    ProfileParser,
    ProfileScraper,
    ProfileSearcher,
)
from src.core.config import WorkflowConfig
from src.core.errors import RateLimitSignal
from src.core.schemas import JobStatus, StageError, StageLabel, StageMarker, StageName
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.state import HaltReason

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """The external collaborators a sourcing run talks to."""

    formatter: JobFormatter
    searcher: ProfileSearcher
    enricher: ContactEnricher
    scraper: ProfileScraper
    parser: ProfileParser
    scorer: CandidateScorer


@dataclass
class StageContext:
    """Checkpoint store, capabilities and tuning shared by the stages of one run."""

    store: CheckpointStore
    capabilities: Capabilities
    config: WorkflowConfig

    def pause_for_rate_limit(
        self,
        job_id: str,
        stage: StageName,
        signal: RateLimitSignal,
        **fields: Any,
    ) -> dict[str, Any]:
        """Persist the pause (plus any progress in ``fields``) and halt the graph."""
        marker = StageMarker.at(StageLabel.RATE_LIMITED)
        self.store.mark_rate_limited(job_id, signal, current_stage=marker, **fields)
        return {
            "halt": HaltReason.RATE_LIMITED,
            "current_stage": marker,
            "errors": [StageError(stage=stage, message=signal.detail, retryable=True)],
        }

    def fail(self, job_id: str, stage: StageName, message: str) -> dict[str, Any]:
        """Mark the job FAILED and halt the graph."""
        logger.error("Job %s failed in %s: %s", job_id, stage, message)
        self.store.mark_terminal(job_id, JobStatus.FAILED, error_message=message)
        return {
            "halt": HaltReason.FAILED,
            "current_stage": StageMarker.at(StageLabel.FAILED),
            "errors": [StageError(stage=stage, message=message, retryable=False)],
        }
