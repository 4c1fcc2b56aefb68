"""LLM-backed structured extraction of cleaned LinkedIn profiles."""

import asyncio
import logging

from src.capabilities.base import ProfileParser
from src.core.errors import RateLimitSignal, StageFatalError
from src.core.schemas import ParsedProfile, StructuredProfile
from src.llm import parse_json_response
from src.llm.base import LLMProvider

logger = logging.getLogger(__name__)

_PARSER_SYSTEM_PROMPT = (
    "You are a LinkedIn profile parser. Extract and structure profile data "
    "from the JSON provided.\n\n"
    "Return ONLY a JSON object (no markdown, no explanation) with these fields:\n"
    "- full_name (string), profile_url (string), headline, location, photo_url, about\n"
    "- current_position, current_company\n"
    "- experience_years (number): total years of professional experience\n"
    "- skills (list[str])\n"
    "- experience (list of {title, company, duration, description, location})\n"
    "- education (list of {degree, school, year})\n"
    "- certifications (list of {name, issuer, year})\n"
    "- languages (list of {name, level})\n"
    "- email, phone, connections, followers\n"
    "- is_premium, is_verified, is_open_to_work (booleans)\n\n"
    "Use null for anything not present. Do not invent data."
)


class LLMProfileParser(ProfileParser):
    """Asks an LLM to normalise a cleaned profile.

    A provider error, non-JSON output, a schema violation or a result
    without a name yields ``ParsedProfile.fallback`` instead; rate limits and
    missing credentials are raised to the stage. The result always carries
    the input profile URL.
    """

    def __init__(self, provider: LLMProvider, model: str | None = None) -> None:
        self._provider = provider
        self._model = model

    async def parse(self, profile: StructuredProfile) -> ParsedProfile:
        try:
            raw = await asyncio.to_thread(
                self._provider.complete,
                profile.model_dump_json(exclude_none=True),
                self._model,
                system=_PARSER_SYSTEM_PROMPT,
            )
            data = {k: v for k, v in parse_json_response(raw).items() if v is not None}
            data["profile_url"] = profile.profile_url
            parsed = StructuredProfile.model_validate(data)
        except (RateLimitSignal, StageFatalError):
            raise
        except Exception:
            logger.warning("AI parsing failed for %s, using cleaned data", profile.profile_url, exc_info=True)
            return ParsedProfile.fallback(profile)

        if not parsed.full_name:
            logger.debug("AI parse of %s returned no name, using cleaned data", profile.profile_url)
            return ParsedProfile.fallback(profile)
        return ParsedProfile(**parsed.model_dump(), source="ai")
