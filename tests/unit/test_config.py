"""Tests for configuration models and YAML loading."""

from pathlib import Path
from textwrap import dedent

import pytest
from pydantic import ValidationError

from src.core.config import (
    ApifyConfig,
    DatabaseConfig,
    JobRequest,
    LLMConfig,
    RecoveryConfig,
    Settings,
    WorkflowConfig,
)


class TestWorkflowConfig:
    def test_defaults(self) -> None:
        c = WorkflowConfig()
        assert c.max_search_iterations == 5
        assert c.max_queries_per_iteration == 2
        assert c.min_new_results == 5
        assert c.enrich_checkpoint_every == 10
        assert c.scrape_batch_size == 20
        assert c.parse_batch_size == 10
        assert c.score_concurrency == 5

    def test_iterations_at_least_one(self) -> None:
        with pytest.raises(ValidationError):
            WorkflowConfig(max_search_iterations=0)

    def test_overfetch_at_least_one(self) -> None:
        with pytest.raises(ValidationError):
            WorkflowConfig(search_overfetch=0.5)


class TestRecoveryConfig:
    def test_defaults(self) -> None:
        c = RecoveryConfig()
        assert c.stale_after_minutes == 10
        assert c.max_retries == 3
        assert c.sweep_interval_seconds == 300


class TestLLMConfig:
    def test_provider_normalised(self) -> None:
        assert LLMConfig(provider=" Anthropic ").provider == "anthropic"

    def test_unknown_provider_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown LLM provider"):
            LLMConfig(provider="mystery")


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert s.database == DatabaseConfig()
        assert s.scraper == "apify"
        assert s.apify == ApifyConfig()

    def test_scraper_choice(self) -> None:
        with pytest.raises(ValidationError):
            Settings(scraper="selenium")  # type: ignore[arg-type]

    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text(dedent("""\
            database:
              path: /tmp/test.db
            llm:
              provider: gemini
              parser_model: gemini-2.5-flash-lite
            scraper: browser
            workflow:
              max_search_iterations: 3
              score_concurrency: 2
            recovery:
              max_retries: 1
        """))
        s = Settings.from_yaml(path)
        assert s.database.path == "/tmp/test.db"
        assert s.llm.provider == "gemini"
        assert s.llm.parser_model == "gemini-2.5-flash-lite"
        assert s.scraper == "browser"
        assert s.workflow.max_search_iterations == 3
        assert s.workflow.score_concurrency == 2
        assert s.workflow.scrape_batch_size == 20
        assert s.recovery.max_retries == 1

    def test_empty_yaml_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert Settings.from_yaml(path) == Settings()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            Settings.from_yaml(tmp_path / "nope.yaml")

    def test_example_settings_load(self) -> None:
        example = Path(__file__).parent.parent.parent / "config" / "settings.example.yaml"
        s = Settings.from_yaml(example)
        assert s.workflow == WorkflowConfig()


class TestJobRequest:
    def test_from_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text(dedent("""\
            title: Data Engineer
            raw_job_description: Build pipelines.
            max_candidates: 15
            job_requirements:
              required_skills: Python, Spark
              location: Lisbon
        """))
        req = JobRequest.from_yaml(path)
        assert req.user_id == "local"
        assert req.max_candidates == 15
        assert req.job_requirements.required_skill_list() == ["Python", "Spark"]

    def test_description_required(self) -> None:
        with pytest.raises(ValidationError):
            JobRequest(raw_job_description="")

    def test_max_candidates_bounds(self) -> None:
        with pytest.raises(ValidationError):
            JobRequest(raw_job_description="x", max_candidates=0)
        with pytest.raises(ValidationError):
            JobRequest(raw_job_description="x", max_candidates=1001)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="Job file not found"):
            JobRequest.from_yaml(tmp_path / "job.yaml")

    def test_example_job_loads(self) -> None:
        example = Path(__file__).parent.parent.parent / "config" / "job.example.yaml"
        req = JobRequest.from_yaml(example)
        assert req.max_candidates == 25
