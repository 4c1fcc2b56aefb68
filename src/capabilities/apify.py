"""Apify actors for LinkedIn profile search and profile scraping.

Both actors are run synchronously through the REST endpoint
``/acts/{actor}/run-sync-get-dataset-items``, which returns the run's dataset
items as a JSON array.
"""

import logging
import os
from datetime import timedelta
from typing import Any

import httpx

from src.capabilities.base import ProfileScraper, ProfileSearcher, reset_time_from_headers
from src.core.config import ApifyConfig
from src.core.errors import MissingCredentialsError, ProviderError, RateLimitSignal
from src.core.schemas import ProfileSearchResult, ScrapedProfile, SearchQuery, normalize_profile_url

logger = logging.getLogger(__name__)

_URL_KEYS = ("inputUrl", "linkedinUrl", "linkedinPublicUrl", "profileUrl", "url")


class ApifyClient:
    """Thin async client over Apify's synchronous actor-run endpoint."""

    def __init__(
        self,
        config: ApifyConfig,
        *,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._token = token
        self._transport = transport

    def _resolve_token(self) -> str:
        token = self._token or os.environ.get(self._config.token_env)
        if not token:
            msg = f"{self._config.token_env} environment variable is required"
            raise MissingCredentialsError(msg)
        return token

    async def run_actor(self, actor: str, actor_input: dict[str, Any], *, provider: str) -> list[dict[str, Any]]:
        """Run an actor to completion and return its dataset items.

        Raises:
            RateLimitSignal: HTTP 429, or an error response mentioning a limit.
            ProviderError: Any other transport or HTTP failure.
        """
        token = self._resolve_token()
        url = f"{self._config.base_url}/acts/{actor}/run-sync-get-dataset-items"
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_s, transport=self._transport) as client:
                resp = await client.post(url, params={"token": token}, json=actor_input)
        except httpx.TimeoutException as e:
            msg = f"Apify actor {actor} timed out after {self._config.timeout_s}s"
            raise ProviderError(msg) from e
        except httpx.RequestError as e:
            msg = f"Apify actor {actor} request failed: {e}"
            raise ProviderError(msg) from e

        if resp.status_code == 429 or (resp.status_code >= 400 and "limit" in _error_text(resp).lower()):
            reset_at = reset_time_from_headers(
                resp.headers,
                default=timedelta(minutes=self._config.rate_limit_backoff_minutes),
            )
            msg = f"Apify actor {actor} rate limited (HTTP {resp.status_code})"
            raise RateLimitSignal(
                msg,
                provider=provider,
                reset_at=reset_at,
                detail=_error_text(resp) or "Provider limit reached. Will retry automatically.",
            )
        if resp.status_code >= 400:
            msg = f"Apify actor {actor} failed with HTTP {resp.status_code}: {_error_text(resp)[:200]}"
            raise ProviderError(msg)

        try:
            data = resp.json()
        except ValueError as e:
            msg = f"Apify actor {actor} returned invalid JSON"
            raise ProviderError(msg) from e
        if not isinstance(data, list):
            msg = f"Apify actor {actor} returned {type(data).__name__}, expected a list"
            raise ProviderError(msg)
        return [item for item in data if isinstance(item, dict)]


def _error_text(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("type") or "")
        if error:
            return str(error)
    return resp.text


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def build_search_input(query: SearchQuery) -> dict[str, Any]:
    """Translate a query into the profile-search actor's input, omitting empty filters."""
    actor_input: dict[str, Any] = {
        "profileScraperMode": "Short",
        "maxItems": query.max_items,
        "takePages": query.take_pages,
    }
    if query.search_query:
        actor_input["searchQuery"] = query.search_query
    if query.current_job_titles:
        actor_input["currentJobTitles"] = query.current_job_titles
    if query.locations:
        actor_input["locations"] = query.locations
    if query.industry_ids:
        actor_input["industryIds"] = [str(i) for i in query.industry_ids]
    if query.years_of_experience_ids:
        actor_input["yearsOfExperienceIds"] = query.years_of_experience_ids
    if query.seniority_level_ids:
        actor_input["seniorityLevelIds"] = query.seniority_level_ids
    return actor_input


def map_search_item(item: dict[str, Any]) -> ProfileSearchResult | None:
    url = item.get("linkedinUrl") or item.get("profileUrl")
    if not url and item.get("publicIdentifier"):
        url = f"https://www.linkedin.com/in/{item['publicIdentifier']}"
    if not url:
        return None
    name = f"{item.get('firstName') or ''} {item.get('lastName') or ''}".strip()
    location = item.get("location")
    if isinstance(location, dict):
        location = location.get("linkedinText")
    return ProfileSearchResult(
        profile_url=url,
        full_name=name or "Unknown",
        headline=item.get("headline"),
        location=location if isinstance(location, str) else None,
    )


class ApifyProfileSearcher(ProfileSearcher):
    """Profile discovery through the LinkedIn profile-search actor."""

    def __init__(self, client: ApifyClient, config: ApifyConfig) -> None:
        self._client = client
        self._config = config

    @property
    def provider_id(self) -> str:
        return "apify_search"

    async def search(self, query: SearchQuery) -> list[ProfileSearchResult]:
        actor_input = build_search_input(query)
        logger.debug("Apify search input for query %d: %s", query.query_id, actor_input)
        items = await self._client.run_actor(
            self._config.search_actor, actor_input, provider=self.provider_id,
        )
        results = [r for r in (map_search_item(item) for item in items) if r is not None]
        logger.info("Query %d (%s) returned %d profiles", query.query_id, query.kind, len(results))
        return results


# ---------------------------------------------------------------------------
# Scrape
# ---------------------------------------------------------------------------


def _item_url(item: dict[str, Any], requested: set[str]) -> str | None:
    first: str | None = None
    for key in _URL_KEYS:
        value = item.get(key)
        if not isinstance(value, str) or not value:
            continue
        url = normalize_profile_url(value)
        if url in requested:
            return url
        first = first or url
    return first


class ApifyProfileScraper(ProfileScraper):
    """Full profile payloads through the LinkedIn profile-scraper actor."""

    def __init__(self, client: ApifyClient, config: ApifyConfig) -> None:
        self._client = client
        self._config = config

    @property
    def provider_id(self) -> str:
        return "apify_scrape"

    async def scrape(self, profile_urls: list[str]) -> list[ScrapedProfile]:
        if not profile_urls:
            return []
        items = await self._client.run_actor(
            self._config.scrape_actor, {"profileUrls": profile_urls}, provider=self.provider_id,
        )
        requested = {normalize_profile_url(u) for u in profile_urls}
        by_url: dict[str, ScrapedProfile] = {}
        for item in items:
            url = _item_url(item, requested)
            if url is None:
                logger.debug("Dropping scraped item without a profile URL")
                continue
            succeeded = item.get("succeeded", True) is not False and not item.get("error")
            by_url[url] = ScrapedProfile(url=url, succeeded=succeeded, data=item)

        results: list[ScrapedProfile] = []
        for url in profile_urls:
            key = normalize_profile_url(url)
            results.append(by_url.get(key) or ScrapedProfile(url=key, succeeded=False))
        missing = sum(1 for r in results if not r.succeeded)
        logger.info("Scraped %d/%d profiles", len(results) - missing, len(results))
        return results
