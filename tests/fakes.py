"""In-memory capability fakes shared by the sourcing tests."""

import asyncio
from datetime import datetime, timedelta, timezone

from src.capabilities.base import (
    CandidateScorer,
    ContactEnricher,
    JobFormatter,
    ProfileParser,
    ProfileScraper,
    ProfileSearcher,
)
from src.core.errors import RateLimitSignal
from src.core.schemas import (
    CandidateRecord,
    CandidateScore,
    EnrichmentResult,
    JobRecord,
    JobRequirements,
    ParsedProfile,
    ProfileSearchResult,
    ScrapedProfile,
    SearchQuery,
    SearchVariant,
    StructuredProfile,
)
from src.sourcing.checkpoint import CheckpointStore
from src.sourcing.context import Capabilities
from src.sourcing.state import SourcingState


class Clock:
    """Settable clock for the checkpoint store."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def profile_url(n: int) -> str:
    return f"https://www.linkedin.com/in/person-{n}"


def urls(start: int, stop: int) -> list[str]:
    return [profile_url(n) for n in range(start, stop)]


def rate_limit(provider: str = "fake", hours: int = 1) -> RateLimitSignal:
    return RateLimitSignal(
        f"{provider} quota exhausted",
        provider=provider,
        reset_at=datetime.now(timezone.utc) + timedelta(hours=hours),
        detail="Limit reached. Will retry automatically.",
    )


def variants(count: int = 3) -> list[SearchVariant]:
    return [
        SearchVariant(
            search_query=f"Python AND Kafka AND Skill{n}",
            current_job_titles=["Backend Engineer", f"Platform Engineer {n}"],
            locations=["Germany"],
            industry_ids=[4],
        )
        for n in range(1, count + 1)
    ]


class FakeFormatter(JobFormatter):
    def __init__(self, result: list[SearchVariant] | None = None, error: BaseException | None = None) -> None:
        self.result = variants() if result is None else result
        self.error = error
        self.calls = 0

    async def format(
        self,
        description: str,
        requirements: JobRequirements,
        max_candidates: int,
    ) -> list[SearchVariant]:
        self.calls += 1
        if self.error is not None:
            error, self.error = self.error, None
            raise error
        return list(self.result)


class FakeSearcher(ProfileSearcher):
    """Returns scripted URLs per query id.

    A scripted exception is raised once, then the query returns nothing.
    The first ``rate_limited_calls`` searches raise a rate limit whatever
    the query.
    """

    def __init__(
        self,
        responses: dict[int, list[str] | BaseException] | None = None,
        rate_limited_calls: int = 0,
    ) -> None:
        self.responses = dict(responses or {})
        self.rate_limited_calls = rate_limited_calls
        self.queries: list[SearchQuery] = []

    @property
    def provider_id(self) -> str:
        return "fake_search"

    async def search(self, query: SearchQuery) -> list[ProfileSearchResult]:
        self.queries.append(query)
        if self.rate_limited_calls:
            self.rate_limited_calls -= 1
            raise rate_limit(self.provider_id)
        response = self.responses.get(query.query_id, [])
        if isinstance(response, BaseException):
            self.responses[query.query_id] = []
            raise response
        return [ProfileSearchResult(profile_url=u, full_name=u.rsplit("/", 1)[-1]) for u in response]


class FakeEnricher(ContactEnricher):
    """Finds an email for every URL except those in ``no_email``."""

    def __init__(
        self,
        no_email: set[str] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.no_email = no_email or set()
        self.errors = dict(errors or {})
        self.calls: list[str] = []

    @property
    def provider_id(self) -> str:
        return "fake_enrich"

    async def enrich(self, profile_url: str) -> EnrichmentResult:
        self.calls.append(profile_url)
        if profile_url in self.errors:
            raise self.errors.pop(profile_url)
        if profile_url in self.no_email:
            return EnrichmentResult()
        slug = profile_url.rsplit("/", 1)[-1]
        return EnrichmentResult(has_contact=True, email=f"{slug}@example.com", full_name=slug.title())


def scraped_data(url: str) -> dict[str, object]:
    slug = url.rsplit("/", 1)[-1]
    return {
        "linkedinUrl": url,
        "fullName": slug.replace("-", " ").title(),
        "headline": "Senior Backend Engineer",
        "addressWithCountry": "Berlin, Germany",
        "skills": [{"title": "Python"}, {"title": "Kafka"}],
        "experiences": [
            {"title": "Backend Engineer", "companyName": "Acme", "duration": "3 yrs 6 mos"},
        ],
    }


class FakeScraper(ProfileScraper):
    """Scrapes every URL except those in ``fail_urls``.

    Entries of ``errors`` are raised on successive calls (``None`` means
    the call succeeds).
    """

    def __init__(
        self,
        fail_urls: set[str] | None = None,
        errors: list[BaseException | None] | None = None,
    ) -> None:
        self.fail_urls = fail_urls or set()
        self.errors = list(errors or [])
        self.batches: list[list[str]] = []

    @property
    def provider_id(self) -> str:
        return "fake_scrape"

    async def scrape(self, profile_urls: list[str]) -> list[ScrapedProfile]:
        self.batches.append(list(profile_urls))
        if self.errors:
            error = self.errors.pop(0)
            if error is not None:
                raise error
        return [
            ScrapedProfile(url=u, succeeded=False) if u in self.fail_urls
            else ScrapedProfile(url=u, data=scraped_data(u))
            for u in profile_urls
        ]


class FakeParser(ProfileParser):
    """Parses every profile; ``fail_urls`` always fail, ``errors`` are raised once."""

    def __init__(
        self,
        fail_urls: set[str] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.fail_urls = fail_urls or set()
        self.errors = dict(errors or {})
        self.calls: list[str] = []

    async def parse(self, profile: StructuredProfile) -> ParsedProfile:
        self.calls.append(profile.profile_url)
        await asyncio.sleep(0)
        if profile.profile_url in self.errors:
            raise self.errors.pop(profile.profile_url)
        if profile.profile_url in self.fail_urls:
            msg = f"cannot parse {profile.profile_url}"
            raise ValueError(msg)
        return ParsedProfile(**profile.model_dump(), source="ai")


def score(total: float = 60.0) -> CandidateScore:
    parts = {
        "skills_score": min(30.0, total),
        "experience_score": min(25.0, max(0.0, total - 30)),
        "industry_score": min(20.0, max(0.0, total - 55)),
        "title_score": min(15.0, max(0.0, total - 75)),
        "nice_to_have_score": min(10.0, max(0.0, total - 90)),
    }
    return CandidateScore(**parts, total_score=total, reasoning="fake")


class FakeScorer(CandidateScorer):
    """Scores by URL; ``errors`` are raised once for the given URLs."""

    def __init__(
        self,
        totals: dict[str, float] | None = None,
        errors: dict[str, BaseException] | None = None,
    ) -> None:
        self.totals = totals or {}
        self.errors = dict(errors or {})
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def score(
        self,
        candidate: CandidateRecord,
        description: str,
        requirements: JobRequirements,
    ) -> CandidateScore:
        self.calls.append(candidate.profile_url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if candidate.profile_url in self.errors:
                raise self.errors.pop(candidate.profile_url)
            return score(self.totals.get(candidate.profile_url, 60.0))
        finally:
            self.active -= 1


def seed_candidates(store: CheckpointStore, job_id: str, count: int, start: int = 1) -> list[str]:
    """Create ``count`` contactable PENDING candidates, as enrichment would."""
    created = urls(start, start + count)
    for url in created:
        slug = url.rsplit("/", 1)[-1]
        store.create_candidate(
            job_id, url,
            enrichment=EnrichmentResult(has_contact=True, email=f"{slug}@example.com"),
            email_source="fake_enrich",
            search_result=ProfileSearchResult(profile_url=url, full_name=slug),
        )
    return created


def state_for(job: JobRecord, **fields: object) -> SourcingState:
    """Workflow state for a freshly created job, plus ``fields``."""
    return SourcingState(
        job_id=job.id,
        user_id=job.user_id,
        raw_job_description=job.raw_job_description,
        job_requirements=job.job_requirements,
        max_candidates=job.max_candidates,
        **fields,  # type: ignore[arg-type]
    )


def make_capabilities(**overrides: object) -> Capabilities:
    parts: dict[str, object] = {
        "formatter": FakeFormatter(),
        "searcher": FakeSearcher(),
        "enricher": FakeEnricher(),
        "scraper": FakeScraper(),
        "parser": FakeParser(),
        "scorer": FakeScorer(),
    }
    parts.update(overrides)
    return Capabilities(**parts)  # type: ignore[arg-type]
