"""Browser session for the profile scraper, built on patchright.

Rules:
  - headless=False always (no config override)
  - Single browser context per process
  - Cookie auth only (no login flow); cookies come from scripts/extract_cookies.py
"""

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from src.core.config import BrowserConfig

logger = logging.getLogger(__name__)

AUTH_COOKIE = "li_at"


class BrowserSession:
    """Async context manager that owns one patchright browser + context + page.

    Usage::

        async with BrowserSession(config) as session:
            scraper = BrowserProfileScraper(session.page)
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._authenticated = False

    @property
    def page(self) -> Page:
        """The single page for this session. Raises if not entered."""
        if self._page is None:
            msg = "BrowserSession not entered, use 'async with'"
            raise RuntimeError(msg)
        return self._page

    @property
    def authenticated(self) -> bool:
        """True when the loaded cookies include LinkedIn's session cookie."""
        return self._authenticated

    async def __aenter__(self) -> "BrowserSession":
        pw = await async_playwright().start()
        self._playwright = pw
        self._browser = await pw.chromium.launch(headless=False)

        cookies = load_cookies(self._config.cookies_path)
        self._context = await self._browser.new_context()
        if cookies:
            await self._context.add_cookies(cookies)
            self._authenticated = any(c.get("name") == AUTH_COOKIE for c in cookies)
            logger.info("Loaded %d cookies from %s", len(cookies), self._config.cookies_path)
        if not self._authenticated:
            logger.warning("No %s cookie loaded, profile pages will hit the authwall", AUTH_COOKIE)

        self._context.set_default_timeout(self._config.timeout_ms)
        self._page = await self._context.new_page()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        self._page = None


def load_cookies(path: str) -> list[dict[str, Any]]:
    """Load cookies from a JSON array file.

    Entries without a name and value are dropped. Returns an empty list on
    any failure.
    """
    cookie_path = Path(path)
    if not cookie_path.exists():
        logger.debug("Cookie file not found: %s", path)
        return []
    try:
        data = json.loads(cookie_path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load cookies from %s: %s", path, e)
        return []
    if not isinstance(data, list):
        logger.warning("Cookie file is not a JSON array: %s", path)
        return []
    return [c for c in data if isinstance(c, dict) and c.get("name") and "value" in c]
