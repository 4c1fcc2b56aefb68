"""Shared fixtures: a fresh SQLite checkpoint store and stage context per test."""

from collections.abc import Callable
from pathlib import Path

import pytest

from src.core.config import WorkflowConfig
from src.core.db import init_db
from src.core.schemas import JobRecord, JobRequirements
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.context import Capabilities, StageContext
from tests.fakes import Clock, make_capabilities


@pytest.fixture()
def clock() -> Clock:
    return Clock()


@pytest.fixture()
def store(tmp_path: Path, clock: Clock) -> CheckpointStore:
    conn = init_db(tmp_path / "sourcing.db")
    yield CheckpointStore(conn, clock=clock)  # type: ignore[misc]
    conn.close()


@pytest.fixture()
def workflow_config() -> WorkflowConfig:
    return WorkflowConfig(enrich_delay_s=0.0)


@pytest.fixture()
def make_ctx(
    store: CheckpointStore, workflow_config: WorkflowConfig,
) -> Callable[..., StageContext]:
    def _make(capabilities: Capabilities | None = None, **config: object) -> StageContext:
        cfg = workflow_config.model_copy(update=config) if config else workflow_config
        return StageContext(store=store, capabilities=capabilities or make_capabilities(), config=cfg)

    return _make


@pytest.fixture()
def job(store: CheckpointStore) -> JobRecord:
    return store.create_job(
        user_id="user-1",
        title="Senior Backend Engineer",
        raw_job_description="Senior backend engineer for payments, Python and Kafka.",
        job_requirements=JobRequirements(
            required_skills="Python, Kafka, PostgreSQL",
            location="Germany",
            industry="fintech",
        ),
        max_candidates=10,
    )
