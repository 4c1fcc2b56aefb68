"""SalesQL contact enrichment for LinkedIn profile URLs."""

import logging
import os
from datetime import timedelta
from typing import Any

import httpx

from src.capabilities.base import ContactEnricher, reset_time_from_headers
from src.core.config import SalesQLConfig
from src.core.errors import MissingCredentialsError, RateLimitSignal
from src.core.schemas import EnrichmentResult

logger = logging.getLogger(__name__)


def pick_email(emails: list[dict[str, Any]]) -> str | None:
    """Prefer a valid direct email, then any valid one, then the first listed."""
    ranked = (
        [e for e in emails if e.get("status") == "Valid" and e.get("type") == "Direct"],
        [e for e in emails if e.get("status") == "Valid"],
        emails,
    )
    for group in ranked:
        for entry in group:
            if entry.get("email"):
                return str(entry["email"])
    return None


def pick_phone(phones: list[dict[str, Any]]) -> str | None:
    for group in ([p for p in phones if p.get("is_valid")], phones):
        for entry in group:
            if entry.get("phone"):
                return str(entry["phone"])
    return None


def _location(data: dict[str, Any]) -> str | None:
    loc = data.get("location")
    if not isinstance(loc, dict):
        return loc if isinstance(loc, str) else None
    region = loc.get("state") or loc.get("country")
    parts = [p for p in (loc.get("city"), region) if p]
    return ", ".join(parts) or None


class SalesQLEnricher(ContactEnricher):
    """Enriches a profile URL with email and phone through the SalesQL API."""

    def __init__(
        self,
        config: SalesQLConfig,
        *,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._api_key = api_key
        self._transport = transport

    @property
    def provider_id(self) -> str:
        return "salesql"

    def _resolve_key(self) -> str:
        key = self._api_key or os.environ.get(self._config.api_key_env)
        if not key:
            msg = f"{self._config.api_key_env} environment variable is required"
            raise MissingCredentialsError(msg)
        return key

    async def enrich(self, profile_url: str) -> EnrichmentResult:
        """Look up contacts for one profile.

        Network failures and non-200 responses yield an empty result; only a
        429 is escalated, as a RateLimitSignal.
        """
        key = self._resolve_key()
        try:
            async with httpx.AsyncClient(timeout=self._config.timeout_s, transport=self._transport) as client:
                resp = await client.get(
                    f"{self._config.base_url}/persons/enrich/",
                    params={"linkedin_url": profile_url},
                    headers={"Authorization": f"Bearer {key}", "Accept": "application/json"},
                )
        except httpx.RequestError:
            logger.warning("SalesQL request failed for %s", profile_url, exc_info=True)
            return EnrichmentResult()

        if resp.status_code == 429:
            reset_at = reset_time_from_headers(
                resp.headers, default=timedelta(hours=self._config.default_reset_hours),
            )
            msg = "SalesQL rate limit exceeded"
            raise RateLimitSignal(
                msg,
                provider=self.provider_id,
                reset_at=reset_at,
                detail="Email enrichment limit reached. Will retry automatically.",
            )
        if resp.status_code != 200:
            logger.debug("SalesQL returned HTTP %d for %s", resp.status_code, profile_url)
            return EnrichmentResult()

        try:
            data = resp.json()
        except ValueError:
            logger.warning("SalesQL returned invalid JSON for %s", profile_url)
            return EnrichmentResult()
        if not isinstance(data, dict):
            return EnrichmentResult()

        email = pick_email(data.get("emails") or [])
        phone = pick_phone(data.get("phones") or [])
        return EnrichmentResult(
            has_contact=email is not None,
            email=email,
            phone=phone,
            full_name=data.get("full_name"),
            headline=data.get("headline") or data.get("title"),
            location=_location(data),
            photo_url=data.get("image"),
            raw=data,
        )
