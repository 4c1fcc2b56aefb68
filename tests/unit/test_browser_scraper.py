"""Tests for the browser-backed profile scraper."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.capabilities.browser_scraper import BrowserProfileScraper
from src.capabilities.profile_selectors import (
    EXPERIENCE_ITEM_SELECTORS,
    EXPERIENCE_TEXT_SELECTOR,
    HEADLINE_SELECTORS,
    NAME_SELECTORS,
    SKILL_SELECTORS,
)
from src.core.errors import RateLimitSignal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _element(text: str | None = None, children: dict[str, list[Any]] | None = None) -> MagicMock:
    el = MagicMock()
    el.text_content = AsyncMock(return_value=text)
    el.query_selector_all = AsyncMock(side_effect=lambda sel: (children or {}).get(sel, []))
    return el


def _make_page(
    single: dict[str, Any] | None = None,
    many: dict[str, list[Any]] | None = None,
    redirect_to: str | None = None,
    goto_error: Exception | None = None,
) -> MagicMock:
    page = MagicMock()
    page.url = "about:blank"

    async def goto(url: str) -> None:
        if goto_error is not None:
            raise goto_error
        page.url = redirect_to or url

    page.goto = AsyncMock(side_effect=goto)
    page.query_selector = AsyncMock(side_effect=lambda sel: (single or {}).get(sel))
    page.query_selector_all = AsyncMock(side_effect=lambda sel: (many or {}).get(sel, []))
    return page


def _full_page() -> MagicMock:
    experience = _element(children={EXPERIENCE_TEXT_SELECTOR: [
        _element("Senior Backend Engineer"), _element("Acme Pay · Full-time"), _element("2 yrs 4 mos"),
    ]})
    return _make_page(
        single={
            NAME_SELECTORS[0]: _element("  Jane   Doe "),
            HEADLINE_SELECTORS[1]: _element("Payments at Acme"),
        },
        many={
            EXPERIENCE_ITEM_SELECTORS[0]: [experience, _element(children={})],
            SKILL_SELECTORS[0]: [_element("Python"), _element(" "), _element("Kafka")],
        },
    )


@pytest.fixture(autouse=True)
def _no_waits():  # type: ignore[no-untyped-def]
    with patch("src.capabilities.browser_scraper.random_sleep", new_callable=AsyncMock) as sleep, \
            patch("src.capabilities.browser_scraper.scroll_until_stable", new_callable=AsyncMock):
        yield sleep


# ---------------------------------------------------------------------------
# TestBrowserProfileScraper
# ---------------------------------------------------------------------------


class TestBrowserProfileScraper:
    async def test_extracts_profile(self) -> None:
        scraper = BrowserProfileScraper(_full_page())
        [result] = await scraper.scrape(["https://www.linkedin.com/in/Jane-Doe/"])
        assert result.succeeded is True
        assert result.url == "https://www.linkedin.com/in/jane-doe"
        assert result.data["fullName"] == "Jane Doe"
        assert result.data["headline"] == "Payments at Acme"
        assert result.data["skills"] == ["Python", "Kafka"]
        assert result.data["experiences"] == [
            {"title": "Senior Backend Engineer", "companyName": "Acme Pay", "duration": "2 yrs 4 mos"},
        ]
        assert result.data["about"] is None

    async def test_delay_between_profiles_only(self, _no_waits: AsyncMock) -> None:
        scraper = BrowserProfileScraper(_full_page(), delay_min=1.0, delay_max=2.0)
        await scraper.scrape(["https://www.linkedin.com/in/a", "https://www.linkedin.com/in/b"])
        _no_waits.assert_awaited_once_with(1.0, 2.0)

    async def test_no_name_is_failure(self) -> None:
        [result] = await BrowserProfileScraper(_make_page()).scrape(["https://www.linkedin.com/in/a"])
        assert result.succeeded is False

    async def test_navigation_error_is_failure(self) -> None:
        page = _make_page(goto_error=TimeoutError("nav timeout"))
        [result] = await BrowserProfileScraper(page).scrape(["https://www.linkedin.com/in/a"])
        assert result.succeeded is False
        assert result.data == {}

    async def test_extraction_error_is_failure(self) -> None:
        page = _full_page()
        page.query_selector = AsyncMock(side_effect=RuntimeError("detached"))
        [result] = await BrowserProfileScraper(page).scrape(["https://www.linkedin.com/in/a"])
        assert result.succeeded is False

    @pytest.mark.parametrize(
        "redirect",
        ["https://www.linkedin.com/checkpoint/challenge/abc", "https://www.linkedin.com/authwall?trk=x"],
    )
    async def test_blocked_session_is_rate_limit(self, redirect: str) -> None:
        page = _make_page(redirect_to=redirect)
        with pytest.raises(RateLimitSignal) as exc_info:
            await BrowserProfileScraper(page).scrape(["https://www.linkedin.com/in/a"])
        assert exc_info.value.provider == "linkedin_browser"

    def test_provider_id(self) -> None:
        assert BrowserProfileScraper(MagicMock()).provider_id == "linkedin_browser"
