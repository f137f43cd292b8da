from finwatch.providers.openai_compatible import OpenAICompatibleProvider


GROQ_MODELS = [
    "llama-3.3-70b-versatile",
    "llama-3.1-8b-instant",
]


class GroqProvider(OpenAICompatibleProvider):
    """Provider for Groq inference API using standard httpx."""

    endpoint = "https://api.groq.com/openai/v1/chat/completions"
    default_model = GROQ_MODELS[0]

    @property
    def name(self) -> str:
        return "groq"
