import asyncio

from finwatch.providers.base import BaseProvider


GEMINI_MODELS = [
    "gemini-1.5-flash",
    "gemini-1.5-pro",
]


class GeminiProvider(BaseProvider):
    """Provider for Google Gemini API using the official SDK."""

    def __init__(self, api_key: str, timeout: float = 30.0):
        self.api_key = api_key
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "gemini"

    async def chat(self, messages: list[dict], model: str | None = None, json_mode: bool = False) -> dict:
        used_model = model or GEMINI_MODELS[0]
        try:
            import google.generativeai as genai
            # genai is configured module-wide, so set the key before every call
            genai.configure(api_key=self.api_key)

            # Extract system instruction
            system_instruction = None
            history = []
            last_message = ""

            for msg in messages:
                if not isinstance(msg.get("content"), str):
                    return self._result(used_model, error="Unsupported content parts")
                if msg["role"] == "system":
                    system_instruction = msg["content"]
                elif msg["role"] == "user":
                    history.append({"role": "user", "parts": [msg["content"]]})
                elif msg["role"] == "assistant":
                    history.append({"role": "model", "parts": [msg["content"]]})

            # The last user turn is sent, not replayed as history
            if history and history[-1]["role"] == "user":
                last_message = history[-1]["parts"][0]
                history = history[:-1]

            generation_config = {"temperature": 0.4, "top_p": 0.8, "top_k": 40, "max_output_tokens": 1024}
            if json_mode:
                generation_config["response_mime_type"] = "application/json"

            g_model = genai.GenerativeModel(
                model_name=used_model,
                system_instruction=system_instruction,
                generation_config=generation_config,
            )

            chat_session = g_model.start_chat(history=history)
            response_coro = chat_session.send_message_async(content=last_message)
            response = await asyncio.wait_for(response_coro, timeout=self.timeout)

            return self._result(used_model, text=response.text)
        except asyncio.TimeoutError:
            return self._result(used_model, error="Timeout")
        except Exception as e:
            return self._result(used_model, error=str(e))
