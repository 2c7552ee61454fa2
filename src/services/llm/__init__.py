"""Language model services."""

from src.services.llm.gemini_client import GeminiClient, LanguageModelError

__all__ = ["GeminiClient", "LanguageModelError"]
