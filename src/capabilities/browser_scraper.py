"""Browser-backed profile scraper using an authenticated patchright page."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from src.browser.actions import random_sleep, scroll_until_stable
from src.capabilities.base import ProfileScraper
from src.capabilities.profile_selectors import (
    ABOUT_SELECTORS,
    BLOCKED_URL_MARKERS,
    EXPERIENCE_ITEM_SELECTORS,
    EXPERIENCE_TEXT_SELECTOR,
    HEADLINE_SELECTORS,
    LOCATION_SELECTORS,
    NAME_SELECTORS,
    SECTION_SELECTORS,
    SKILL_SELECTORS,
)
from src.core.errors import RateLimitSignal
from src.core.schemas import ScrapedProfile, normalize_profile_url

logger = logging.getLogger(__name__)

BLOCKED_BACKOFF = timedelta(hours=1)


class BrowserProfileScraper(ProfileScraper):
    """Visits each profile page and extracts the fields the cleaner understands.

    Requires a browser page object (patchright Page) injected via constructor,
    normally ``BrowserSession.page``.
    """

    def __init__(self, page: Any, *, delay_min: float = 3.0, delay_max: float = 7.0) -> None:
        self._page = page
        self._delay_min = delay_min
        self._delay_max = delay_max

    @property
    def provider_id(self) -> str:
        return "linkedin_browser"

    async def scrape(self, profile_urls: list[str]) -> list[ScrapedProfile]:
        results: list[ScrapedProfile] = []
        for position, url in enumerate(profile_urls):
            results.append(await self._scrape_one(normalize_profile_url(url)))
            if position < len(profile_urls) - 1:
                await random_sleep(self._delay_min, self._delay_max)
        return results

    async def _scrape_one(self, url: str) -> ScrapedProfile:
        try:
            await self._page.goto(url)
        except Exception:
            logger.warning("Failed to open profile %s", url, exc_info=True)
            return ScrapedProfile(url=url, succeeded=False)

        if any(marker in (self._page.url or "") for marker in BLOCKED_URL_MARKERS):
            msg = f"LinkedIn redirected {url} to {self._page.url}"
            raise RateLimitSignal(
                msg,
                provider=self.provider_id,
                reset_at=datetime.now(timezone.utc) + BLOCKED_BACKOFF,
                detail="LinkedIn session blocked or logged out. Will retry automatically.",
            )

        try:
            await scroll_until_stable(self._page, item_selectors=SECTION_SELECTORS)
            data = await self._extract(url)
        except Exception:
            logger.warning("Failed to extract profile %s", url, exc_info=True)
            return ScrapedProfile(url=url, succeeded=False)

        return ScrapedProfile(url=url, succeeded=bool(data.get("fullName")), data=data)

    async def _extract(self, url: str) -> dict[str, Any]:
        return {
            "linkedinUrl": url,
            "fullName": await self._first_text(NAME_SELECTORS),
            "headline": await self._first_text(HEADLINE_SELECTORS),
            "addressWithCountry": await self._first_text(LOCATION_SELECTORS),
            "about": await self._first_text(ABOUT_SELECTORS),
            "experiences": await self._experiences(),
            "skills": await self._all_texts(SKILL_SELECTORS),
        }

    async def _first_text(self, selectors: tuple[str, ...]) -> str | None:
        for selector in selectors:
            el = await self._page.query_selector(selector)
            if el is None:
                continue
            text = await el.text_content()
            if text and text.strip():
                return " ".join(text.split())
        return None

    async def _all_texts(self, selectors: tuple[str, ...]) -> list[str]:
        for selector in selectors:
            elements = await self._page.query_selector_all(selector)
            texts = [" ".join((await el.text_content() or "").split()) for el in elements]
            texts = [t for t in texts if t]
            if texts:
                return texts
        return []

    async def _experiences(self) -> list[dict[str, str]]:
        for selector in EXPERIENCE_ITEM_SELECTORS:
            items = await self._page.query_selector_all(selector)
            if not items:
                continue
            entries = []
            for item in items:
                spans = await item.query_selector_all(EXPERIENCE_TEXT_SELECTOR)
                parts = [" ".join((await s.text_content() or "").split()) for s in spans]
                parts = [p for p in parts if p]
                if not parts:
                    continue
                entry = {"title": parts[0]}
                if len(parts) > 1:
                    entry["companyName"] = parts[1].split(" · ")[0]
                if len(parts) > 2:
                    entry["duration"] = parts[2]
                entries.append(entry)
            return entries
        return []
