"""Configuration models and YAML loader for the candidate sourcing engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from src.core.schemas import JobRequirements


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/sourcing.db"


class WorkflowConfig(BaseModel):
    """Stage tuning: search loop limits, batch sizes and pacing."""

    max_search_iterations: int = Field(default=5, ge=1)
    max_queries_per_iteration: int = Field(default=2, ge=1)
    min_new_results: int = Field(default=5, ge=0)
    search_overfetch: float = Field(default=2.0, ge=1.0)
    enrich_checkpoint_every: int = Field(default=10, ge=1)
    enrich_delay_s: float = Field(default=0.334, ge=0.0)
    scrape_batch_size: int = Field(default=20, ge=1)
    parse_batch_size: int = Field(default=10, ge=1)
    update_batch_size: int = Field(default=20, ge=1)
    score_batch_size: int = Field(default=20, ge=1)
    score_concurrency: int = Field(default=5, ge=1)
    max_graph_steps: int = Field(default=100, ge=10)


class RecoveryConfig(BaseModel):
    """Stale-job detection and automatic retry ceiling."""

    stale_after_minutes: int = Field(default=10, ge=1)
    max_retries: int = Field(default=3, ge=0)
    sweep_interval_seconds: int = Field(default=300, ge=10)


class LLMConfig(BaseModel):
    """Provider used by the formatter, profile parser and scorer."""

    provider: str = "openai"
    model: str | None = None
    parser_model: str | None = None

    @field_validator("provider")
    @classmethod
    def known_provider(cls, v: str) -> str:
        from src.llm import available_providers

        name = v.strip().lower()
        if name not in available_providers():
            valid = ", ".join(available_providers())
            msg = f"Unknown LLM provider '{v}'. Available: {valid}"
            raise ValueError(msg)
        return name


class ApifyConfig(BaseModel):
    """Apify actors used for profile search and profile scraping."""

    token_env: str = "APIFY_API_TOKEN"
    base_url: str = "https://api.apify.com/v2"
    search_actor: str = "harvestapi~linkedin-profile-search"
    scrape_actor: str = "dev_fusion~Linkedin-Profile-Scraper"
    timeout_s: float = Field(default=300.0, gt=0)
    rate_limit_backoff_minutes: int = Field(default=60, ge=1)


class SalesQLConfig(BaseModel):
    """SalesQL contact enrichment."""

    api_key_env: str = "SALESQL_API_KEY"
    base_url: str = "https://api-public.salesql.com/v1"
    timeout_s: float = Field(default=30.0, gt=0)
    default_reset_hours: int = Field(default=24, ge=1)


class BrowserConfig(BaseModel):
    """Browser session configuration."""

    cookies_path: str = "config/linkedin_cookies.json"
    timeout_ms: int = Field(default=30000, ge=1000)
    page_delay_min: float = Field(default=3.0, ge=0.0)
    page_delay_max: float = Field(default=7.0, ge=0.0)


def _load_yaml(path: str | Path, kind: str) -> dict[str, Any]:
    path = Path(path)
    if not path.exists():
        msg = f"{kind} file not found: {path}"
        raise FileNotFoundError(msg)
    raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
    return raw


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    apify: ApifyConfig = Field(default_factory=ApifyConfig)
    salesql: SalesQLConfig = Field(default_factory=SalesQLConfig)
    scraper: Literal["apify", "browser"] = "apify"
    browser: BrowserConfig = Field(default_factory=BrowserConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        return cls.model_validate(_load_yaml(path, "Config"))


class JobRequest(BaseModel):
    """A sourcing job as submitted from a YAML file."""

    user_id: str = "local"
    title: str = ""
    raw_job_description: str = Field(min_length=1)
    job_requirements: JobRequirements = Field(default_factory=JobRequirements)
    max_candidates: int = Field(default=50, ge=1, le=1000)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "JobRequest":
        return cls.model_validate(_load_yaml(path, "Job"))
