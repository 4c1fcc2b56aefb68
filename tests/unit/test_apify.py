"""Tests for the Apify search and scrape actors."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.capabilities.apify import (
    ApifyClient,
    ApifyProfileScraper,
    ApifyProfileSearcher,
    build_search_input,
    map_search_item,
)
from src.capabilities.base import reset_time_from_headers
from src.core.config import ApifyConfig
from src.core.errors import MissingCredentialsError, ProviderError, RateLimitSignal
from src.core.schemas import QueryTier, SearchQuery

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CONFIG = ApifyConfig()


def _client(handler, token: str | None = "tok") -> ApifyClient:  # type: ignore[no-untyped-def]
    return ApifyClient(CONFIG, token=token, transport=httpx.MockTransport(handler))


def _query(**kw: object) -> SearchQuery:
    fields: dict[str, object] = {
        "query_id": 4,
        "tier": QueryTier.PRECISE,
        "variant": 2,
        "description": "Variant 2 - precise search with all filters",
        "search_query": "Python AND Kafka",
        "current_job_titles": ["Backend Engineer"],
        "locations": ["Germany"],
        "industry_ids": [43, 4],
        "max_items": 20,
        "take_pages": 2,
    }
    fields.update(kw)
    return SearchQuery(**fields)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# TestApifyClient
# ---------------------------------------------------------------------------

class TestApifyClient:
    async def test_posts_input_and_returns_items(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"a": 1}, "junk", {"b": 2}])

        items = await _client(handler).run_actor("me~actor", {"x": 1}, provider="apify_search")
        assert items == [{"a": 1}, {"b": 2}]
        assert seen[0].url.path == "/v2/acts/me~actor/run-sync-get-dataset-items"
        assert seen[0].url.params["token"] == "tok"
        assert json.loads(seen[0].content) == {"x": 1}

    async def test_missing_token(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv(CONFIG.token_env, raising=False)
        with pytest.raises(MissingCredentialsError, match="APIFY_API_TOKEN"):
            await _client(lambda r: httpx.Response(200, json=[]), token=None).run_actor("a", {}, provider="p")

    async def test_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(CONFIG.token_env, "env-token")
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.params["token"])
            return httpx.Response(200, json=[])

        await _client(handler, token=None).run_actor("a", {}, provider="p")
        assert seen == ["env-token"]

    async def test_429_is_rate_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"retry-after": "120"}, json={"error": {"message": "Too many"}})

        before = datetime.now(timezone.utc)
        with pytest.raises(RateLimitSignal) as exc_info:
            await _client(handler).run_actor("a", {}, provider="apify_search")
        assert exc_info.value.provider == "apify_search"
        assert exc_info.value.reset_at >= before + timedelta(seconds=120)
        assert exc_info.value.detail == "Too many"

    async def test_limit_error_text_is_rate_limit(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(402, json={"error": {"type": "platform-feature-disabled",
                                                       "message": "Monthly usage hard limit exceeded"}})

        with pytest.raises(RateLimitSignal):
            await _client(handler).run_actor("a", {}, provider="apify_scrape")

    async def test_other_http_error(self) -> None:
        with pytest.raises(ProviderError, match="HTTP 500"):
            await _client(lambda r: httpx.Response(500, text="boom")).run_actor("a", {}, provider="p")

    async def test_non_list_body(self) -> None:
        with pytest.raises(ProviderError, match="expected a list"):
            await _client(lambda r: httpx.Response(200, json={"items": []})).run_actor("a", {}, provider="p")

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ProviderError, match="request failed"):
            await _client(handler).run_actor("a", {}, provider="p")


class TestResetTimeFromHeaders:
    NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_epoch_reset(self) -> None:
        epoch = int((self.NOW + timedelta(hours=3)).timestamp())
        reset = reset_time_from_headers({"x-ratelimit-reset": str(epoch)}, default=timedelta(hours=1), now=self.NOW)
        assert reset == self.NOW + timedelta(hours=3)

    def test_retry_after(self) -> None:
        reset = reset_time_from_headers({"retry-after": "90"}, default=timedelta(hours=1), now=self.NOW)
        assert reset == self.NOW + timedelta(seconds=90)

    def test_default(self) -> None:
        assert reset_time_from_headers({}, default=timedelta(hours=24), now=self.NOW) == self.NOW + timedelta(hours=24)


# ---------------------------------------------------------------------------
# TestSearch
# ---------------------------------------------------------------------------

class TestSearchInput:
    def test_full_query(self) -> None:
        actor_input = build_search_input(_query())
        assert actor_input == {
            "profileScraperMode": "Short",
            "maxItems": 20,
            "takePages": 2,
            "searchQuery": "Python AND Kafka",
            "currentJobTitles": ["Backend Engineer"],
            "locations": ["Germany"],
            "industryIds": ["43", "4"],
        }

    def test_empty_filters_omitted(self) -> None:
        actor_input = build_search_input(_query(search_query="", current_job_titles=[], industry_ids=[]))
        assert "searchQuery" not in actor_input
        assert "currentJobTitles" not in actor_input
        assert "industryIds" not in actor_input


class TestMapSearchItem:
    def test_full_item(self) -> None:
        result = map_search_item({
            "linkedinUrl": "https://www.linkedin.com/in/Jane-Doe/",
            "firstName": "Jane",
            "lastName": "Doe",
            "headline": "Engineer",
            "location": {"linkedinText": "Berlin, Germany"},
        })
        assert result is not None
        assert result.profile_url == "https://www.linkedin.com/in/jane-doe"
        assert result.full_name == "Jane Doe"
        assert result.location == "Berlin, Germany"

    def test_public_identifier(self) -> None:
        result = map_search_item({"publicIdentifier": "jdoe"})
        assert result is not None
        assert result.profile_url == "https://www.linkedin.com/in/jdoe"
        assert result.full_name == "Unknown"

    def test_no_url(self) -> None:
        assert map_search_item({"firstName": "Jane"}) is None


class TestApifyProfileSearcher:
    async def test_search(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert CONFIG.search_actor in request.url.path
            return httpx.Response(200, json=[
                {"linkedinUrl": "https://www.linkedin.com/in/a"},
                {"firstName": "no url"},
                {"profileUrl": "https://www.linkedin.com/in/b"},
            ])

        searcher = ApifyProfileSearcher(_client(handler), CONFIG)
        results = await searcher.search(_query())
        assert [r.profile_url for r in results] == ["https://www.linkedin.com/in/a", "https://www.linkedin.com/in/b"]
        assert searcher.provider_id == "apify_search"


# ---------------------------------------------------------------------------
# TestScrape
# ---------------------------------------------------------------------------

class TestApifyProfileScraper:
    async def test_results_follow_requested_order(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"profileUrls": [
                "https://www.linkedin.com/in/a", "https://www.linkedin.com/in/b", "https://www.linkedin.com/in/c",
            ]}
            return httpx.Response(200, json=[
                {"linkedinUrl": "https://www.linkedin.com/in/B/", "fullName": "Bee"},
                {"inputUrl": "https://www.linkedin.com/in/a", "fullName": "Ay"},
            ])

        scraper = ApifyProfileScraper(_client(handler), CONFIG)
        results = await scraper.scrape([
            "https://www.linkedin.com/in/a", "https://www.linkedin.com/in/b", "https://www.linkedin.com/in/c",
        ])
        assert [(r.url[-1], r.succeeded) for r in results] == [("a", True), ("b", True), ("c", False)]
        assert results[1].data["fullName"] == "Bee"

    async def test_error_item_is_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"linkedinUrl": "https://www.linkedin.com/in/a", "succeeded": False}])

        results = await ApifyProfileScraper(_client(handler), CONFIG).scrape(["https://www.linkedin.com/in/a"])
        assert results[0].succeeded is False

    async def test_empty_batch_skips_call(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert await ApifyProfileScraper(_client(handler), CONFIG).scrape([]) == []
