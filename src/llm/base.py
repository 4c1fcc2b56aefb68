"""Abstract base class for LLM providers and shared response handling."""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any

from src.capabilities.base import reset_time_from_headers
from src.core.errors import MissingCredentialsError, RateLimitSignal

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a precise assistant for a technical recruiting team. "
    "Return ONLY a JSON object (no markdown, no explanation)."
)

DEFAULT_MAX_TOKENS = 4096

# Used when a 429 carries no reset headers
RATE_LIMIT_BACKOFF = timedelta(minutes=1)


def parse_json_response(raw_text: str) -> dict[str, Any]:
    """Parse an LLM response text into a JSON object.

    Handles markdown-wrapped JSON (```json ... ```) and plain JSON.
    """
    cleaned = re.sub(r"^```(?:json)?\s*\n?", "", raw_text.strip())
    cleaned = re.sub(r"\n?```\s*$", "", cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse LLM response as JSON: {e}"
        raise ValueError(msg) from e

    if not isinstance(data, dict):
        msg = f"Expected a JSON object from LLM, got {type(data).__name__}"
        raise ValueError(msg)
    return data


def is_rate_limit_error(exc: BaseException) -> bool:
    """True for SDK errors that report HTTP 429 or quota exhaustion.

    The anthropic and openai SDKs expose ``status_code``, google-genai
    exposes ``code``; both also name the class ``RateLimitError`` or use
    the ``RESOURCE_EXHAUSTED`` status.
    """
    if type(exc).__name__ == "RateLimitError":
        return True
    for attr in ("status_code", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    return getattr(exc, "status", None) == "RESOURCE_EXHAUSTED"


def _reset_headers(exc: BaseException) -> Any:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    return headers if headers is not None else {}


class LLMProvider(ABC):
    """Base class that every LLM provider must implement.

    ``complete`` resolves the model and system prompt, then hands off to
    the provider's ``_generate``. A quota error raised by the SDK comes
    back as a ``RateLimitSignal`` so the calling stage can pause the job.
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider (e.g. 'anthropic')."""

    @property
    @abstractmethod
    def default_model(self) -> str:
        """The default model ID used when no override is specified."""

    @property
    @abstractmethod
    def env_var(self) -> str | None:
        """Environment variable name for the API key, or None if not needed."""

    def complete(
        self,
        prompt: str,
        model: str | None = None,
        *,
        system: str | None = None,
    ) -> str:
        """Send a prompt to the LLM and return raw response text.

        Args:
            prompt: User message.
            model: Override the provider's default model. None uses default.
            system: Override the system prompt. None falls back to DEFAULT_SYSTEM_PROMPT.

        Raises:
            MissingCredentialsError: The provider's API key is not set.
            RateLimitSignal: The provider rejected the call with a quota error.
        """
        use_model = model or self.default_model
        use_system = system if system is not None else DEFAULT_SYSTEM_PROMPT
        logger.debug("Sending prompt to %s (%s)", self.provider_id, use_model)
        try:
            return self._generate(prompt, use_model, use_system)
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            msg = f"{self.provider_id} rate limited: {e}"
            raise RateLimitSignal(
                msg,
                provider=self.provider_id,
                reset_at=reset_time_from_headers(_reset_headers(e), default=RATE_LIMIT_BACKOFF),
                detail="LLM rate limit reached. Will retry automatically.",
            ) from e

    def api_key(self) -> str:
        """Read the API key from ``env_var``."""
        key = os.environ.get(self.env_var) if self.env_var else None
        if not key:
            msg = f"{self.env_var} environment variable is required"
            raise MissingCredentialsError(msg)
        return key

    @abstractmethod
    def _generate(self, prompt: str, model: str, system: str) -> str:
        """Make one SDK call and return the response text."""
