from finwatch.providers.openai_compatible import OpenAICompatibleProvider


OPENAI_MODELS = [
    "gpt-4o-mini",
    "gpt-4o",
]
OPENAI_VISION_MODEL = "gpt-4o"


class OpenAIProvider(OpenAICompatibleProvider):
    """Provider for the OpenAI chat-completions API; accepts image content parts."""

    endpoint = "https://api.openai.com/v1/chat/completions"
    default_model = OPENAI_MODELS[0]
    supports_vision = True

    @property
    def name(self) -> str:
        return "openai"

    async def chat(self, messages: list[dict], model: str | None = None, json_mode: bool = False) -> dict:
        # Image parts need the full model
        if model is None and any(isinstance(m.get("content"), list) for m in messages):
            model = OPENAI_VISION_MODEL
        return await super().chat(messages, model, json_mode=json_mode)
