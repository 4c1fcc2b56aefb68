"""Tests for wiring capabilities from settings."""

from unittest.mock import MagicMock, patch

import pytest

from src.ai.formatter import LLMJobFormatter
from src.ai.profile_parser import LLMProfileParser
from src.capabilities.apify import ApifyProfileScraper, ApifyProfileSearcher
from src.capabilities.browser_scraper import BrowserProfileScraper
from src.capabilities.factory import build_capabilities
from src.capabilities.salesql import SalesQLEnricher
from src.core.config import LLMConfig, Settings


def _provider() -> MagicMock:
    provider = MagicMock()
    provider.provider_id = "openai"
    return provider


class TestBuildCapabilities:
    def test_apify_scraper_by_default(self) -> None:
        with patch("src.capabilities.factory.get_provider", return_value=_provider()) as get:
            caps = build_capabilities(Settings(llm=LLMConfig(provider="openai")))
        get.assert_called_once_with("openai")
        assert isinstance(caps.formatter, LLMJobFormatter)
        assert isinstance(caps.searcher, ApifyProfileSearcher)
        assert isinstance(caps.enricher, SalesQLEnricher)
        assert isinstance(caps.scraper, ApifyProfileScraper)
        assert isinstance(caps.parser, LLMProfileParser)

    def test_browser_scraper_uses_page(self) -> None:
        page = MagicMock()
        with patch("src.capabilities.factory.get_provider", return_value=_provider()):
            caps = build_capabilities(Settings(scraper="browser"), page=page)
        assert isinstance(caps.scraper, BrowserProfileScraper)
        assert caps.scraper.provider_id == "linkedin_browser"

    def test_browser_scraper_needs_page(self) -> None:
        with patch("src.capabilities.factory.get_provider", return_value=_provider()), \
                pytest.raises(ValueError, match="no browser page"):
            build_capabilities(Settings(scraper="browser"))

    def test_parser_model_override(self) -> None:
        provider = _provider()
        settings = Settings(llm=LLMConfig(provider="openai", model="big", parser_model="small"))
        with patch("src.capabilities.factory.get_provider", return_value=provider):
            caps = build_capabilities(settings)
        assert caps.parser._model == "small"  # type: ignore[attr-defined]
        assert caps.scorer._model == "big"  # type: ignore[attr-defined]
