"""Google Gemini LLM provider (google-genai SDK)."""

from src.llm.base import LLMProvider


class GeminiProvider(LLMProvider):
    """LLM provider using the Google Gemini API with JSON output."""

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def default_model(self) -> str:
        return "gemini-2.5-flash"

    @property
    def env_var(self) -> str:
        return "GOOGLE_API_KEY"

    def _generate(self, prompt: str, model: str, system: str) -> str:
        api_key = self.api_key()
        try:
            from google import genai
            from google.genai import types as genai_types
        except ImportError:
            msg = (
                "google-genai is required for this provider. "
                "Install with: pip install 'candidate-sourcing[gemini]'"
            )
            raise ImportError(msg) from None

        client = genai.Client(api_key=api_key)
        response = client.models.generate_content(
            model=model,
            contents=prompt,
            config=genai_types.GenerateContentConfig(
                system_instruction=system,
                temperature=0,
                response_mime_type="application/json",
            ),
        )
        return response.text or ""
