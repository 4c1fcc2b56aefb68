"""Anthropic Claude LLM provider."""

from src.llm.base import DEFAULT_MAX_TOKENS, LLMProvider


class AnthropicProvider(LLMProvider):
    """LLM provider using the Anthropic Claude Messages API."""

    @property
    def provider_id(self) -> str:
        return "anthropic"

    @property
    def default_model(self) -> str:
        return "claude-sonnet-4-20250514"

    @property
    def env_var(self) -> str:
        return "ANTHROPIC_API_KEY"

    def _generate(self, prompt: str, model: str, system: str) -> str:
        api_key = self.api_key()
        try:
            import anthropic
        except ImportError:
            msg = (
                "anthropic is required for this provider. "
                "Install with: pip install 'candidate-sourcing[anthropic]'"
            )
            raise ImportError(msg) from None

        # no SDK retries: a 429 reaches complete() as-is
        client = anthropic.Anthropic(api_key=api_key, max_retries=0)
        message = client.messages.create(
            model=model,
            max_tokens=DEFAULT_MAX_TOKENS,
            temperature=0,
            system=system,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in message.content if block.type == "text")
