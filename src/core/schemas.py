"""Core data models for the candidate sourcing engine."""

import re
from datetime import datetime, timezone
from enum import IntEnum, StrEnum
from typing import Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_PROFILE_PATH_RE = re.compile(r"^/in/([^/]+)")


def normalize_profile_url(url: str) -> str:
    """Return the canonical ``https://www.linkedin.com/in/<slug>`` form of a profile URL.

    Query string, fragment and trailing slash are dropped. URLs that are not
    LinkedIn profile links keep their host and path.
    """
    text = url.strip()
    if not text:
        return ""
    if "://" not in text:
        text = f"https://{text}"
    parsed = urlparse(text)
    host = parsed.netloc.lower()
    path = parsed.path.rstrip("/")
    match = _PROFILE_PATH_RE.match(path)
    if host.endswith("linkedin.com") and match:
        return f"https://www.linkedin.com/in/{match.group(1).lower()}"
    return f"{parsed.scheme.lower()}://{host}{path}"


# ---------------------------------------------------------------------------
# Lifecycle enums
# ---------------------------------------------------------------------------


class JobStatus(StrEnum):
    """Coarse lifecycle status of a sourcing job."""

    CREATED = "CREATED"
    FORMATTING_JD = "FORMATTING_JD"
    JD_FORMATTED = "JD_FORMATTED"
    SEARCHING_PROFILES = "SEARCHING_PROFILES"
    PROFILES_FOUND = "PROFILES_FOUND"
    SCRAPING_PROFILES = "SCRAPING_PROFILES"
    PARSING_PROFILES = "PARSING_PROFILES"
    SAVING_PROFILES = "SAVING_PROFILES"
    SCORING_PROFILES = "SCORING_PROFILES"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    RATE_LIMITED = "RATE_LIMITED"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class ScrapingStatus(StrEnum):
    PENDING = "PENDING"
    SCRAPED = "SCRAPED"


class StageName(StrEnum):
    """Workflow stages, declared in topological order."""

    FORMAT_JD = "format_jd"
    GENERATE_QUERIES = "generate_queries"
    SEARCH_PROFILES = "search_profiles"
    ENRICH_AND_CREATE = "enrich_and_create"
    SCRAPE_CANDIDATES = "scrape_candidates"
    PARSE_CANDIDATES = "parse_candidates"
    UPDATE_CANDIDATES = "update_candidates"
    SCORE_CANDIDATES = "score_candidates"
    HANDLE_NO_CANDIDATES = "handle_no_candidates"


STAGE_ORDER: tuple[StageName, ...] = tuple(StageName)


def stage_position(stage: StageName | None) -> int:
    """Index of a stage in topological order; -1 for "nothing completed yet"."""
    if stage is None:
        return -1
    return STAGE_ORDER.index(stage)


class StageLabel(StrEnum):
    """Fine-grained progress labels shown as ``current_stage``."""

    CREATED = "CREATED"
    FORMATTING_JD = "FORMATTING_JD"
    JD_FORMATTED = "JD_FORMATTED"
    QUERIES_GENERATED = "QUERIES_GENERATED"
    SEARCH_ITERATION = "SEARCH_ITERATION"
    SEARCH_NOT_NEEDED = "SEARCH_NOT_NEEDED"
    SEARCH_PENDING_URLS = "SEARCH_PENDING_URLS"
    ENRICHING = "ENRICHING"
    ENRICHMENT_COMPLETE = "ENRICHMENT_COMPLETE"
    SCRAPING_BATCH = "SCRAPING_BATCH"
    SCRAPING_COMPLETE = "SCRAPING_COMPLETE"
    PARSING_BATCH = "PARSING_BATCH"
    PARSING_COMPLETE = "PARSING_COMPLETE"
    UPDATING_BATCH = "UPDATING_BATCH"
    UPDATE_COMPLETE = "UPDATE_COMPLETE"
    SCORED = "SCORED"
    SCORING_COMPLETE = "SCORING_COMPLETE"
    NO_CANDIDATES_FOUND = "NO_CANDIDATES_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    FAILED = "FAILED"
    AUTO_RECOVERY = "AUTO_RECOVERY"
    RETRY_INITIATED = "RETRY_INITIATED"


_MARKER_RE = re.compile(r"^(?P<label>[A-Z_]+?)(?:_(?P<index>\d+)(?:_OF_(?P<total>\d+))?)?$")


class StageMarker(BaseModel):
    """A stage label with optional progress payload.

    Renders as ``SCRAPING_BATCH_3_OF_7``, ``SEARCH_ITERATION_2`` or a bare label.
    """

    model_config = ConfigDict(frozen=True)

    label: StageLabel
    index: int | None = Field(default=None, ge=0)
    total: int | None = Field(default=None, ge=0)

    @classmethod
    def at(cls, label: StageLabel, index: int | None = None, total: int | None = None) -> "StageMarker":
        return cls(label=label, index=index, total=total)

    @classmethod
    def parse(cls, text: str) -> "StageMarker":
        match = _MARKER_RE.match(text.strip())
        if match is None:
            msg = f"Unrecognised stage marker: {text!r}"
            raise ValueError(msg)
        index = match.group("index")
        total = match.group("total")
        return cls(
            label=StageLabel(match.group("label")),
            index=int(index) if index is not None else None,
            total=int(total) if total is not None else None,
        )

    def __str__(self) -> str:
        if self.index is None:
            return self.label.value
        if self.total is None:
            return f"{self.label.value}_{self.index}"
        return f"{self.label.value}_{self.index}_OF_{self.total}"


# ---------------------------------------------------------------------------
# Job inputs and search planning
# ---------------------------------------------------------------------------


class JobRequirements(BaseModel):
    """Structured hiring requirements attached to a job."""

    required_skills: str = ""
    nice_to_have: str = ""
    years_of_experience: str = ""
    location: str = ""
    industry: str = ""
    education_level: str = ""
    company_type: str = ""

    def required_skill_list(self) -> list[str]:
        return _split_skills(self.required_skills)

    def nice_to_have_list(self) -> list[str]:
        return _split_skills(self.nice_to_have)


def _split_skills(text: str) -> list[str]:
    return [part.strip() for part in re.split(r"[,;\n]", text) if part.strip()]


class SearchVariant(BaseModel):
    """One AI-proposed search strategy for a job."""

    search_query: str = ""
    current_job_titles: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    industry_ids: list[int] = Field(default_factory=list)
    years_of_experience_ids: list[str] = Field(default_factory=list)
    seniority_level_ids: list[str] = Field(default_factory=list)
    take_pages: int = Field(default=3, ge=1, le=10)
    reasoning: str = ""


class QueryTier(IntEnum):
    PRECISE = 1
    BROAD = 2
    ALTERNATIVE = 3


class SearchQuery(BaseModel):
    """A concrete provider search request derived from a variant."""

    model_config = ConfigDict(frozen=True)

    query_id: int
    tier: QueryTier
    variant: int
    description: str
    search_query: str = ""
    current_job_titles: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    industry_ids: list[int] = Field(default_factory=list)
    years_of_experience_ids: list[str] = Field(default_factory=list)
    seniority_level_ids: list[str] = Field(default_factory=list)
    max_items: int = Field(default=50, ge=1)
    take_pages: int = Field(default=3, ge=1)

    @property
    def kind(self) -> str:
        return self.tier.name.lower()


# ---------------------------------------------------------------------------
# Provider payloads
# ---------------------------------------------------------------------------


class ProfileSearchResult(BaseModel):
    """A profile hit returned by the search provider."""

    model_config = ConfigDict(frozen=True)

    profile_url: str
    full_name: str = "Unknown"
    headline: str | None = None
    location: str | None = None

    @field_validator("profile_url")
    @classmethod
    def canonical_url(cls, v: str) -> str:
        return normalize_profile_url(v)


class EnrichmentResult(BaseModel):
    """Contact-enrichment outcome for one profile URL.

    ``has_contact`` is set when an email was found; only those leads become
    candidates.
    """

    has_contact: bool = False
    email: str | None = None
    phone: str | None = None
    full_name: str | None = None
    headline: str | None = None
    location: str | None = None
    photo_url: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ScrapedProfile(BaseModel):
    """Raw scraper payload for one URL, tagged with success."""

    url: str
    succeeded: bool = True
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def canonical_url(cls, v: str) -> str:
        return normalize_profile_url(v)


class ExperienceEntry(BaseModel):
    title: str
    company: str = ""
    duration: str = ""
    description: str | None = None
    location: str | None = None


class EducationEntry(BaseModel):
    degree: str = ""
    school: str = ""
    year: str | None = None


class CertificationEntry(BaseModel):
    name: str
    issuer: str | None = None
    year: str | None = None


class LanguageEntry(BaseModel):
    name: str
    level: str | None = None


class StructuredProfile(BaseModel):
    """Normalised candidate profile, produced by the cleaner or the AI parser."""

    full_name: str = ""
    profile_url: str = ""
    headline: str | None = None
    location: str | None = None
    photo_url: str | None = None
    about: str | None = None
    current_position: str | None = None
    current_company: str | None = None
    experience_years: float | None = None
    skills: list[str] = Field(default_factory=list)
    experience: list[ExperienceEntry] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    certifications: list[CertificationEntry] = Field(default_factory=list)
    languages: list[LanguageEntry] = Field(default_factory=list)
    email: str | None = None
    phone: str | None = None
    connections: int | None = None
    followers: int | None = None
    is_premium: bool = False
    is_verified: bool = False
    is_open_to_work: bool = False


class ParsedProfile(StructuredProfile):
    """A structured profile tagged with how it was produced."""

    source: Literal["ai", "fallback"] = "ai"

    @classmethod
    def fallback(cls, profile: StructuredProfile) -> "ParsedProfile":
        """The cleaned profile as-is, tagged as not AI-parsed."""
        return cls(**profile.model_dump(exclude={"source"}), source="fallback")


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


class CandidateScore(BaseModel):
    """Rubric-based fit assessment of one candidate against a job."""

    skills_score: float = Field(ge=0, le=30)
    experience_score: float = Field(ge=0, le=25)
    industry_score: float = Field(ge=0, le=20)
    title_score: float = Field(ge=0, le=15)
    nice_to_have_score: float = Field(ge=0, le=10)
    total_score: float = Field(ge=0, le=100)
    reasoning: str = ""
    matched_skills: list[str] = Field(default_factory=list)
    missing_skills: list[str] = Field(default_factory=list)
    bonus_skills: list[str] = Field(default_factory=list)
    relevant_years: int | None = Field(default=None, ge=0)
    seniority_level: Literal["Entry", "Mid", "Senior", "Lead", "Executive"] | None = None
    industry_match: str | None = None
    interview_readiness: Literal[
        "READY_TO_INTERVIEW", "INTERVIEW_WITH_VALIDATION", "NOT_RECOMMENDED"
    ] = "INTERVIEW_WITH_VALIDATION"
    interview_readiness_reason: str = ""
    interview_confidence_score: float = Field(default=50.0, ge=0, le=100)
    candidate_summary: str = ""
    key_strengths: list[str] = Field(default_factory=list)
    critical_gaps: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    suggested_questions: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Persistent records
# ---------------------------------------------------------------------------


class StageError(BaseModel):
    """One entry of the workflow error log."""

    model_config = ConfigDict(frozen=True)

    stage: StageName
    message: str
    retryable: bool = True
    timestamp: datetime = Field(default_factory=utcnow)


class CandidateRecord(BaseModel):
    """A candidate row belonging to one job."""

    id: int
    job_id: str
    profile_url: str
    full_name: str = "Unknown"
    headline: str | None = None
    location: str | None = None
    photo_url: str | None = None
    email: str | None = None
    phone: str | None = None
    has_contact_info: bool = False
    email_source: str | None = None
    scraping_status: ScrapingStatus = ScrapingStatus.PENDING
    profile: ParsedProfile | None = None
    is_duplicate: bool = False
    first_seen_job_id: str | None = None
    is_scored: bool = False
    match_score: float | None = None
    score: CandidateScore | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    enriched_at: datetime | None = None
    scraped_at: datetime | None = None
    scored_at: datetime | None = None


class JobRecord(BaseModel):
    """Durable checkpoint of a sourcing job."""

    id: str
    user_id: str
    title: str = ""
    raw_job_description: str
    job_requirements: JobRequirements = Field(default_factory=JobRequirements)
    max_candidates: int
    status: JobStatus = JobStatus.CREATED
    current_stage: StageMarker = Field(default_factory=lambda: StageMarker.at(StageLabel.CREATED))
    last_completed_stage: StageName | None = None
    search_variants: list[SearchVariant] = Field(default_factory=list)
    discovered_urls: frozenset[str] = frozenset()
    enriched_urls: frozenset[str] = frozenset()
    used_query_ids: frozenset[int] = frozenset()
    search_iterations: int = 0
    last_scraped_batch: int = 0
    scrape_batch_total: int = 0
    last_parsed_batch: int = 0
    parse_batch_total: int = 0
    total_profiles_found: int = 0
    profiles_scraped: int = 0
    profiles_parsed: int = 0
    profiles_saved: int = 0
    profiles_scored: int = 0
    error_message: str | None = None
    rate_limit_hit_at: datetime | None = None
    rate_limit_reset_at: datetime | None = None
    rate_limit_provider: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    created_at: datetime
    last_activity_at: datetime
    completed_at: datetime | None = None
    failed_at: datetime | None = None


class CandidateSummary(BaseModel):
    """Compact candidate view used in progress reports."""

    full_name: str
    profile_url: str
    match_score: float | None = None
    interview_readiness: str | None = None
    is_duplicate: bool = False


class JobProgress(BaseModel):
    """Read model consumed by progress streaming and the CLI status command."""

    job_id: str
    status: JobStatus
    current_stage: str
    last_completed_stage: StageName | None = None
    max_candidates: int
    total_profiles_found: int = 0
    profiles_scraped: int = 0
    profiles_parsed: int = 0
    profiles_saved: int = 0
    profiles_scored: int = 0
    candidates_total: int = 0
    error_message: str | None = None
    rate_limit_reset_at: datetime | None = None
    retry_count: int = 0
    top_candidates: list[CandidateSummary] = Field(default_factory=list)
