"""
llm_router.py - Multi-LLM Router
Routes AI requests to the best available provider with automatic fallback
and per-provider scoring by priority, recent failures and response time.
"""

import logging
import time

from finwatch.providers.base import BaseProvider

logger = logging.getLogger(__name__)


class LLMRouter:
    """Route AI requests to the best available LLM provider."""

    def __init__(self, providers: list[BaseProvider]):
        # Registration order is the priority order (lower = tried first)
        self.providers: list[dict] = [
            {
                "name": p.name,
                "instance": p,
                "priority": i + 1,
                "failure_count": 0,
                "avg_response_time": 0.0,
                "total_calls": 0,
            }
            for i, p in enumerate(providers)
        ]

    @property
    def available(self) -> bool:
        return bool(self.providers)

    def has_vision(self) -> bool:
        return any(e["instance"].supports_vision for e in self.providers)

    # ------------------------------------------------------------------
    def _score(self, entry: dict) -> float:
        """Score a provider - lower is better."""
        return (
            entry["priority"]
            + (entry["failure_count"] * 5)
            + (entry["avg_response_time"] * 0.1)
        )

    # ------------------------------------------------------------------
    async def route(self, messages: list, json_mode: bool = False, require_vision: bool = False) -> dict:
        """Route a chat request through available providers with fallback.

        Parameters
        ----------
        messages : list
            OpenAI-style list of {role, content} dicts.
        json_mode : bool
            Ask providers for a bare JSON object.
        require_vision : bool
            Only consider providers that accept image content.

        Returns
        -------
        dict  with keys: text, provider, model, status, error, response_time
        """
        ordered = sorted(self.providers, key=self._score)
        if require_vision:
            ordered = [p for p in ordered if p["instance"].supports_vision]

        last_error = "No providers configured"
        for entry in ordered:
            provider_name = entry["name"]
            try:
                t0 = time.time()
                result = await entry["instance"].chat(messages, json_mode=json_mode)
                elapsed = round(time.time() - t0, 3)
            except Exception as exc:
                entry["failure_count"] += 1
                last_error = f"{provider_name}: {exc}"
                logger.warning("LLM provider %s raised: %s", provider_name, exc)
                continue

            if result.get("status") == "success":
                entry["total_calls"] += 1
                entry["avg_response_time"] = round(
                    (entry["avg_response_time"] * (entry["total_calls"] - 1) + elapsed)
                    / entry["total_calls"],
                    3,
                )
                entry["failure_count"] = max(0, entry["failure_count"] - 1)
                logger.debug("LLM provider %s answered in %.3fs", provider_name, elapsed)

                return {
                    "text": result.get("text", ""),
                    "provider": result.get("provider", provider_name),
                    "model": result.get("model"),
                    "status": "success",
                    "error": None,
                    "response_time": elapsed,
                }

            entry["failure_count"] += 1
            last_error = result.get("error") or f"{provider_name} returned an error"
            logger.warning("LLM provider %s failed: %s", provider_name, last_error)

        return {
            "text": None,
            "provider": None,
            "model": None,
            "status": "error",
            "error": last_error,
            "response_time": 0,
        }
