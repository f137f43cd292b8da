import asyncio
import json

import pytest

from finwatch.schemas import Budget
from finwatch.services.content_service import ContentGenerator, summarize_budgets

from conftest import FakeRouter, success_reply


ALERT_PAYLOAD = {"category": "Food", "spent": 450.0, "total": 500.0, "percentage": 90.0}


@pytest.mark.asyncio
async def test_uses_ai_subject_and_body():
    reply = success_reply('Here you go: {"subject": "Food at 90%", "body": "<p>Slow down on Food</p>"}')
    router = FakeRouter([reply])
    content = await ContentGenerator(llm_router=router).generate("single_alert", ALERT_PAYLOAD)

    assert content.subject == "Food at 90%"
    assert content.body == "<p>Slow down on Food</p>"
    assert not content.used_fallback
    prompt = router.calls[0][0][1]["content"]
    assert '"category": "Food"' in prompt
    assert router.calls[0][1]["json_mode"] is True


@pytest.mark.asyncio
async def test_fallback_when_generation_raises():
    router = FakeRouter([RuntimeError("upstream down")])
    content = await ContentGenerator(llm_router=router).generate("single_alert", ALERT_PAYLOAD)

    assert content.used_fallback
    assert content.subject
    assert "Food" in content.subject
    assert "Food" in content.body
    assert "90.0%" in content.body
    assert "₹450.00" in content.body
    assert content.body.count("<li>") == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        {"status": "error", "text": None, "error": "All providers failed"},
        success_reply("I think you should spend less."),
        success_reply('{"subject": "", "body": "x"}'),
        success_reply('{"headline": "Food", "text": "x"}'),
        success_reply("[1, 2, 3]"),
        success_reply('{"subject": "broken", "body": '),
    ],
)
async def test_fallback_on_unusable_reply(reply):
    content = await ContentGenerator(llm_router=FakeRouter([reply])).generate("single_alert", ALERT_PAYLOAD)
    assert content.used_fallback
    assert "90.0%" in content.body


@pytest.mark.asyncio
async def test_fallback_on_timeout():
    class SlowRouter(FakeRouter):
        async def route(self, messages, **kwargs):
            await asyncio.sleep(5)

    content = await ContentGenerator(llm_router=SlowRouter(), timeout=0.01).generate("single_alert", ALERT_PAYLOAD)
    assert content.used_fallback


@pytest.mark.asyncio
async def test_fallback_without_router():
    content = await ContentGenerator().generate("single_alert", {**ALERT_PAYLOAD, "spent": 600.0, "percentage": 120.0})
    assert content.subject == "Budget Alert: Your Food budget has been exceeded"
    assert "120.0%" in content.body


@pytest.mark.asyncio
async def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        await ContentGenerator().generate("monthly_digest", {})


def test_fallback_escapes_category():
    subject, body = ContentGenerator().fallback_single_alert(
        {"category": "<b>Fun</b>", "spent": 80, "total": 100, "percentage": 80.0}
    )
    assert "<b>Fun</b>" not in body
    assert "&lt;b&gt;Fun&lt;/b&gt;" in body


def test_currency_symbol_is_configurable():
    _, body = ContentGenerator(currency_symbol="$").fallback_single_alert(ALERT_PAYLOAD)
    assert "$450.00" in body
    assert "$500.00" in body


def test_summarize_budgets():
    budgets = [
        Budget(id="1", user_id="u1", category="Food", spent=460, total=500),
        Budget(id="2", user_id="u1", category="Rent", spent=100, total=1500),
        Budget(id="3", user_id="u1", category="Fuel", spent=80, total=100),
        Budget(id="4", user_id="u1", category="Gifts", spent=10, total=0),
    ]
    stats = summarize_budgets(budgets)
    assert stats.total_spent == 650
    assert stats.total_budget == 2100
    assert stats.overspent == ["Food"]
    assert stats.healthy == ["Rent"]
    assert stats.budget_count == 4


@pytest.mark.asyncio
async def test_weekly_summary_prompt_and_fallback_carry_aggregates():
    budgets = [
        Budget(id="1", user_id="u1", category="Food", spent=460, total=500),
        Budget(id="2", user_id="u1", category="Rent", spent=100, total=1500),
    ]
    router = FakeRouter([RuntimeError("boom")])
    content = await ContentGenerator(llm_router=router).generate("weekly_summary", {"budgets": budgets})

    facts = json.loads(router.calls[0][0][1]["content"].split("Facts: ", 1)[1])
    assert facts["overspent_categories"] == ["Food"]
    assert facts["healthy_categories"] == ["Rent"]
    assert facts["total_spent"] == 560

    assert content.used_fallback
    assert "₹560.00" in content.subject
    assert "Food" in content.body and "Rent" in content.body
