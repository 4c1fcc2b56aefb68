"""Ollama local LLM provider (OpenAI-compatible API)."""

import os

from src.llm.base import LLMProvider
from src.llm.openai import chat_json

_OLLAMA_BASE_URL = "http://localhost:11434/v1"


class OllamaProvider(LLMProvider):
    """LLM provider using a local Ollama instance via the openai SDK.

    Needs no API key. ``OLLAMA_BASE_URL`` overrides the server address.
    """

    @property
    def provider_id(self) -> str:
        return "ollama"

    @property
    def default_model(self) -> str:
        return "llama3"

    @property
    def env_var(self) -> None:
        return None

    def _generate(self, prompt: str, model: str, system: str) -> str:
        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for Ollama (OpenAI-compatible API). "
                "Install with: pip install 'candidate-sourcing[openai]'"
            )
            raise ImportError(msg) from None

        base_url = os.environ.get("OLLAMA_BASE_URL", _OLLAMA_BASE_URL)
        client = openai.OpenAI(base_url=base_url, api_key="ollama", max_retries=0)
        return chat_json(client, model, system, prompt, json_mode=False)
