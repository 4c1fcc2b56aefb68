"""Wire concrete capability adapters from settings."""

import logging
from typing import Any

from src.ai.formatter import LLMJobFormatter
from src.ai.profile_parser import LLMProfileParser
from src.ai.scorer import LLMCandidateScorer
from src.capabilities.apify import ApifyClient, ApifyProfileScraper, ApifyProfileSearcher
from src.capabilities.base import ProfileScraper
from src.capabilities.browser_scraper import BrowserProfileScraper
from src.capabilities.salesql import SalesQLEnricher
from src.core.config import Settings
from src.llm import get_provider
from src.sourcing.context import Capabilities

logger = logging.getLogger(__name__)


def build_capabilities(settings: Settings, page: Any = None) -> Capabilities:
    """Build the production capabilities.

    ``page`` is the patchright page of an open ``BrowserSession``; it is
    required when ``settings.scraper`` is ``"browser"``.
    """
    provider = get_provider(settings.llm.provider)
    client = ApifyClient(settings.apify)

    scraper: ProfileScraper
    if settings.scraper == "browser":
        if page is None:
            msg = "Browser scraper selected but no browser page was provided"
            raise ValueError(msg)
        scraper = BrowserProfileScraper(
            page,
            delay_min=settings.browser.page_delay_min,
            delay_max=settings.browser.page_delay_max,
        )
    else:
        scraper = ApifyProfileScraper(client, settings.apify)

    logger.info("Capabilities: llm=%s scraper=%s", provider.provider_id, scraper.provider_id)
    return Capabilities(
        formatter=LLMJobFormatter(provider, settings.llm.model),
        searcher=ApifyProfileSearcher(client, settings.apify),
        enricher=SalesQLEnricher(settings.salesql),
        scraper=scraper,
        parser=LLMProfileParser(provider, settings.llm.parser_model or settings.llm.model),
        scorer=LLMCandidateScorer(provider, settings.llm.model),
    )
