from abc import ABC, abstractmethod


class BaseProvider(ABC):
    """Abstract base class for all AI providers."""

    supports_vision: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """The name of this provider (e.g. 'groq', 'gemini')."""
        ...

    @abstractmethod
    async def chat(self, messages: list[dict], model: str | None = None, json_mode: bool = False) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content' keys.
                Vision-capable providers also accept OpenAI-style content
                part lists (text + image_url).
            model: Optional model identifier. Provider uses its default if None.
            json_mode: Ask the provider to answer with a single JSON object.

        Returns:
            dict with keys:
                - text: str | None  - the generated text
                - provider: str     - provider name
                - model: str        - model used
                - status: "success" | "failed"
                - error: str | None - error message on failure
        """
        ...

    def _result(self, model: str, text: str | None = None, error: str | None = None) -> dict:
        return {
            "text": text,
            "provider": self.name,
            "model": model,
            "status": "failed" if error else "success",
            "error": error,
        }
