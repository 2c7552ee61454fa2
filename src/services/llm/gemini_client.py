"""
Gemini Language Model Client

Thin wrapper around google-generativeai. One prompt in, one text out.

DESIGN DECISION: The client knows nothing about finance. Prompt building
lives in src/agents/prompts.py and reply parsing in src/agents/ai_agents.py,
so agents can be tested with a fake client that returns canned JSON.

When a schema is given, the request asks for application/json output
constrained by that schema (Gemini's structured output mode).
"""

from typing import Optional

import google.generativeai as genai
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from src.config import GeminiSettings, get_settings


logger = structlog.get_logger()


class LanguageModelError(Exception):
    """The language model call failed or returned nothing usable."""
    pass


class GeminiClient:
    """
    Async Gemini client.

    The API key is read from settings (GEMINI_API_KEY) unless one is passed
    explicitly, e.g. a key the user typed into the settings page.
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        api_key: Optional[str] = None,
    ):
        self._settings = settings or get_settings().gemini
        self._api_key = api_key or self._settings.api_key
        genai.configure(api_key=self._api_key)

    @property
    def model_name(self) -> str:
        return self._settings.model_name

    def _build_model(
        self,
        schema: Optional[dict] = None,
        temperature: Optional[float] = None,
    ) -> genai.GenerativeModel:
        generation_config = {
            "temperature": self._settings.temperature if temperature is None else temperature,
            "max_output_tokens": self._settings.max_tokens,
        }
        if schema is not None:
            generation_config["response_mime_type"] = "application/json"
            generation_config["response_schema"] = schema

        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=generation_config,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate_with_retry(self, model: genai.GenerativeModel, prompt: str):
        return await model.generate_content_async(prompt)

    async def generate(
        self,
        prompt: str,
        schema: Optional[dict] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """
        Send one prompt and return the model's text.

        Raises:
            LanguageModelError: If the call fails or the reply is empty
        """
        model = self._build_model(schema=schema, temperature=temperature)
        try:
            response = await self._generate_with_retry(model, prompt)
        except Exception as e:
            logger.error("gemini_request_failed", model=self.model_name, error=str(e))
            raise LanguageModelError(f"Gemini request failed: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or has no parts
            raise LanguageModelError(f"Gemini returned no text: {e}") from e

        if not text or not text.strip():
            raise LanguageModelError("Gemini returned an empty response")

        return text.strip()

    async def verify_api_key(self) -> bool:
        """Send a trivial prompt to check the key works."""
        try:
            await self.generate("Hello")
            return True
        except LanguageModelError as e:
            logger.warning("gemini_api_key_check_failed", error=str(e))
            return False
