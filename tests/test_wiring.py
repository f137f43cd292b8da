from types import SimpleNamespace

import pytest

from finwatch import config
from finwatch.dependencies import build_llm_router, build_services
from finwatch.providers import GeminiProvider, GroqProvider, OpenAIProvider
from finwatch.supabase_client import SupabaseAdmin

from conftest import InMemoryRepository


def test_admin_client_needs_credentials():
    with pytest.raises(ValueError):
        SupabaseAdmin("", "key")


@pytest.mark.asyncio
async def test_admin_email_lookup():
    admin = SupabaseAdmin("https://proj.supabase.co", "service-key")
    user = SimpleNamespace(email="asha@example.com")
    admin._client = SimpleNamespace(
        auth=SimpleNamespace(admin=SimpleNamespace(get_user_by_id=lambda uid: SimpleNamespace(user=user)))
    )
    assert await admin.get_user_email("u1") == "asha@example.com"


@pytest.mark.asyncio
async def test_admin_lookup_failure_is_none():
    def boom(uid):
        raise RuntimeError("User not found")

    admin = SupabaseAdmin("https://proj.supabase.co", "service-key")
    admin._client = SimpleNamespace(auth=SimpleNamespace(admin=SimpleNamespace(get_user_by_id=boom)))
    assert await admin.get_user_email("u1") is None


def test_one_provider_per_key_in_priority_order(monkeypatch):
    monkeypatch.setattr(config, "GROQ_API_KEYS", ["g1", "g2"])
    monkeypatch.setattr(config, "GEMINI_API_KEYS", ["m1"])
    monkeypatch.setattr(config, "OPENAI_API_KEYS", ["o1"])

    router = build_llm_router()

    kinds = [type(e["instance"]) for e in router.providers]
    assert kinds == [GroqProvider, GroqProvider, GeminiProvider, OpenAIProvider]
    assert router.has_vision()


def test_build_services_shares_one_router(monkeypatch):
    monkeypatch.setattr(config, "ALERT_COOLDOWN_HOURS", 12.0)
    router = build_llm_router()
    services = build_services(repository=InMemoryRepository(), llm_router=router)

    assert services.receipt_extractor.llm_router is router
    assert services.dispatcher.content_generator.llm_router is router
    assert services.dispatcher.deduplicator.cooldown.total_seconds() == 12 * 3600
