from finwatch.providers.base import BaseProvider
from finwatch.providers.groq_provider import GroqProvider
from finwatch.providers.gemini_provider import GeminiProvider
from finwatch.providers.openai_provider import OpenAIProvider


__all__ = [
    "BaseProvider",
    "GroqProvider",
    "GeminiProvider",
    "OpenAIProvider",
]
