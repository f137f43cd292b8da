import httpx

from finwatch.providers.base import BaseProvider


class OpenAICompatibleProvider(BaseProvider):
    """Shared body for providers that speak the OpenAI chat-completions API."""

    endpoint: str = ""
    default_model: str = ""

    def __init__(self, api_key: str, timeout: float = 30.0, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def chat(self, messages: list[dict], model: str | None = None, json_mode: bool = False) -> dict:
        used_model = model or self.default_model
        try:
            headers = {
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            }
            body = {
                "model": used_model,
                "messages": messages,
                "max_tokens": 1024,
            }
            if json_mode:
                body["response_format"] = {"type": "json_object"}

            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, headers=headers, json=body)
                response.raise_for_status()
                data = response.json()
                text = data["choices"][0]["message"]["content"] if "choices" in data and data["choices"] else None

            if not text:
                return self._result(used_model, error="Empty response")
            return self._result(used_model, text=text)
        except httpx.TimeoutException:
            return self._result(used_model, error="Timeout")
        except Exception as e:
            return self._result(used_model, error=str(e))
