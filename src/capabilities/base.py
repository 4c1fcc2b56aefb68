"""Abstract capability interfaces the sourcing stages depend on.

Stages only see these contracts; concrete adapters (Apify, SalesQL, the
browser scraper and the LLM-backed AI capabilities) are wired in by the
service layer.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import datetime, timedelta, timezone

from src.core.schemas import (
    CandidateRecord,
    CandidateScore,
    EnrichmentResult,
    JobRequirements,
    ParsedProfile,
    ProfileSearchResult,
    ScrapedProfile,
    SearchQuery,
    SearchVariant,
    StructuredProfile,
)


class JobFormatter(ABC):
    """Turns a free-text job description into search variants."""

    @abstractmethod
    async def format(
        self,
        description: str,
        requirements: JobRequirements,
        max_candidates: int,
    ) -> list[SearchVariant]:
        """Return one or more search variants for the job."""


class ProfileSearcher(ABC):
    """Discovers candidate profiles for a search query."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Tag recorded on rate-limit pauses (e.g. 'apify_search')."""

    @abstractmethod
    async def search(self, query: SearchQuery) -> list[ProfileSearchResult]:
        """Run one query. Raises RateLimitSignal when the quota is exhausted."""


class ContactEnricher(ABC):
    """Looks up contact details for a profile URL."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Tag stored as the candidate's email source."""

    @abstractmethod
    async def enrich(self, profile_url: str) -> EnrichmentResult:
        """Return contact details (``has_contact=False`` when none were found)."""


class ProfileScraper(ABC):
    """Fetches full profile payloads."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Tag recorded on rate-limit pauses."""

    @abstractmethod
    async def scrape(self, profile_urls: list[str]) -> list[ScrapedProfile]:
        """Scrape a batch of profiles; failed entries carry ``succeeded=False``."""


class ProfileParser(ABC):
    """Converts a cleaned profile into the structured, validated shape."""

    @abstractmethod
    async def parse(self, profile: StructuredProfile) -> ParsedProfile:
        """Return a parsed profile, falling back to ``source='fallback'`` on failure."""


class CandidateScorer(ABC):
    """Scores a candidate against a job."""

    @abstractmethod
    async def score(
        self,
        candidate: CandidateRecord,
        description: str,
        requirements: JobRequirements,
    ) -> CandidateScore:
        """Return the rubric breakdown. Raises on malformed model output."""


def reset_time_from_headers(
    headers: Mapping[str, str],
    *,
    default: timedelta,
    now: datetime | None = None,
) -> datetime:
    """Work out when a rate limit resets from common response headers.

    ``X-RateLimit-Reset`` is read as epoch seconds, ``Retry-After`` as a delay
    in seconds. Falls back to ``now + default``.
    """
    now = now or datetime.now(timezone.utc)
    epoch = headers.get("x-ratelimit-reset")
    if epoch and epoch.strip().isdigit():
        return datetime.fromtimestamp(int(epoch.strip()), tz=timezone.utc)
    delay = headers.get("retry-after")
    if delay and delay.strip().isdigit():
        return now + timedelta(seconds=int(delay.strip()))
    return now + default
