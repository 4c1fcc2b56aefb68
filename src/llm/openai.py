"""OpenAI LLM provider."""

from typing import Any

from src.llm.base import LLMProvider


def chat_json(client: Any, model: str, system: str, prompt: str, *, json_mode: bool = True) -> str:
    """One deterministic chat completion; shared with the Ollama provider."""
    kwargs: dict[str, Any] = {}
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}
    response = client.chat.completions.create(
        model=model,
        temperature=0,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        **kwargs,
    )
    return response.choices[0].message.content or ""


class OpenAIProvider(LLMProvider):
    """LLM provider using the OpenAI API in JSON mode."""

    @property
    def provider_id(self) -> str:
        return "openai"

    @property
    def default_model(self) -> str:
        return "gpt-4o-mini"

    @property
    def env_var(self) -> str:
        return "OPENAI_API_KEY"

    def _generate(self, prompt: str, model: str, system: str) -> str:
        api_key = self.api_key()
        try:
            import openai
        except ImportError:
            msg = (
                "openai is required for this provider. "
                "Install with: pip install 'candidate-sourcing[openai]'"
            )
            raise ImportError(msg) from None

        client = openai.OpenAI(api_key=api_key, max_retries=0)
        return chat_json(client, model, system, prompt)
