from datetime import timedelta

import pytest

from finwatch.exceptions import InvalidDispatchRequest
from finwatch.schemas import Budget

from conftest import NOW, FakeRouter, make_budget, success_reply


@pytest.mark.asyncio
async def test_food_budget_at_90_percent_is_sent(make_dispatcher, repository, email_service):
    outcome = await make_dispatcher().process_budget(make_budget())

    assert outcome.status == "sent"
    assert outcome.percentage == 90
    assert outcome.bucket == 90
    assert outcome.email_delivered
    assert len(repository.alert_events) == 1
    assert len(repository.notifications) == 1

    event = repository.alert_events[0]
    assert event.percentage_bucket == 90
    assert event.email_sent_to == "asha@example.com"
    assert event.created_at == NOW
    assert event.email_delivered

    note = repository.notifications[0]
    assert note.title == "Critical: Budget Alert"
    assert note.message == "Your Food budget is at 90% utilization."
    assert not note.read

    assert email_service.sent[0]["to"] == "asha@example.com"


@pytest.mark.asyncio
async def test_repeat_two_hours_later_is_cooling_down(make_dispatcher, repository, email_service):
    await make_dispatcher().process_budget(make_budget())
    later = make_dispatcher(clock=lambda: NOW + timedelta(hours=2))

    outcome = await later.process_budget(make_budget())

    assert outcome.status == "skipped_cooldown"
    assert len(repository.alert_events) == 1
    assert len(repository.notifications) == 1
    assert len(email_service.sent) == 1


@pytest.mark.asyncio
async def test_repeat_after_a_day_is_sent_again(make_dispatcher, repository):
    await make_dispatcher().process_budget(make_budget())
    outcome = await make_dispatcher(clock=lambda: NOW + timedelta(hours=25)).process_budget(make_budget())

    assert outcome.status == "sent"
    assert len(repository.alert_events) == 2


@pytest.mark.asyncio
async def test_crossing_into_worse_bucket_alerts_immediately(make_dispatcher, repository):
    await make_dispatcher().process_budget(make_budget(spent=400))
    outcome = await make_dispatcher(clock=lambda: NOW + timedelta(minutes=1)).process_budget(make_budget(spent=460))

    assert outcome.status == "sent"
    assert [e.percentage_bucket for e in repository.alert_events] == [75, 90]


@pytest.mark.asyncio
async def test_unspent_rent_budget_is_skipped(make_dispatcher, repository, email_service):
    outcome = await make_dispatcher().process_budget(make_budget(category="Rent", spent=0, total=1500))

    assert outcome.status == "skipped"
    assert outcome.bucket == "none"
    assert repository.alert_events == []
    assert repository.notifications == []
    assert email_service.sent == []


@pytest.mark.asyncio
async def test_zero_total_budget_is_skipped(make_dispatcher, repository):
    outcome = await make_dispatcher().process_budget(make_budget(spent=10, total=0))
    assert outcome.status == "skipped"
    assert outcome.bucket == "not_applicable"
    assert repository.alert_events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["id", "user_id", "category"])
async def test_missing_identifier_is_rejected_before_any_work(make_dispatcher, repository, field):
    budget = make_budget().model_copy(update={field: None})
    with pytest.raises(InvalidDispatchRequest) as exc:
        await make_dispatcher().process_budget(budget)
    assert exc.value.missing == [field]
    assert repository.email_lookups == []


@pytest.mark.asyncio
async def test_explicit_email_skips_lookup(make_dispatcher, repository, email_service):
    outcome = await make_dispatcher().process_budget(make_budget(), user_email="direct@example.com")
    assert outcome.status == "sent"
    assert repository.email_lookups == []
    assert email_service.sent[0]["to"] == "direct@example.com"


@pytest.mark.asyncio
async def test_no_contact_address_still_logs_alert(make_dispatcher, repository, email_service):
    outcome = await make_dispatcher().process_budget(make_budget(user_id="u9"))
    assert outcome.status == "sent"
    assert not outcome.email_delivered
    assert email_service.sent == []
    assert repository.alert_events[0].email_sent_to is None


@pytest.mark.asyncio
async def test_failed_delivery_does_not_block_logging(make_dispatcher, repository, email_service):
    email_service.status = "failed"
    outcome = await make_dispatcher().process_budget(make_budget())
    assert outcome.status == "sent"
    assert not outcome.email_delivered
    assert len(repository.alert_events) == 1
    assert not repository.alert_events[0].email_delivered


@pytest.mark.asyncio
async def test_alert_log_failure_stops_before_email(make_dispatcher, repository, email_service):
    repository.fail_on.add("insert_alert_event")
    outcome = await make_dispatcher().process_budget(make_budget())
    assert outcome.status == "error"
    assert "insert_alert_event" in outcome.error
    assert email_service.sent == []
    assert repository.notifications == []


@pytest.mark.asyncio
async def test_storage_guard_turns_race_into_cooldown(make_dispatcher, repository, email_service):
    dispatcher = make_dispatcher()
    first = await dispatcher.process_budget(make_budget())
    # Simulate a racer that read history before the first insert landed
    repository.list_alert_events = _empty_history
    second = await dispatcher.process_budget(make_budget())

    assert first.status == "sent"
    assert second.status == "skipped_cooldown"
    assert len(repository.alert_events) == 1
    assert len(email_service.sent) == 1
    assert not second.email_delivered


async def _empty_history(budget_id, since=None):
    return []


@pytest.mark.asyncio
async def test_concurrent_dispatches_email_once(make_dispatcher, repository, email_service):
    repository.history_delay = 0.01
    outcomes = await make_dispatcher().process_all_budgets([make_budget(), make_budget()])

    assert sorted((o.status, o.email_delivered) for o in outcomes) == [
        ("sent", True),
        ("skipped_cooldown", False),
    ]
    assert len(email_service.sent) == 1
    assert len(repository.alert_events) == 1
    assert len(repository.notifications) == 1


@pytest.mark.asyncio
async def test_delivery_flag_failure_is_an_error(make_dispatcher, repository, email_service):
    repository.fail_on.add("mark_alert_delivered")
    outcome = await make_dispatcher().process_budget(make_budget())
    assert outcome.status == "error"
    assert outcome.email_delivered
    assert len(email_service.sent) == 1


@pytest.mark.asyncio
async def test_ai_content_is_emailed(make_dispatcher, email_service):
    router = FakeRouter([success_reply('{"subject": "Easy on the food", "body": "<p>90% gone</p>"}')])
    outcome = await make_dispatcher(router=router).process_budget(make_budget())
    assert not outcome.used_fallback
    assert email_service.sent[0]["subject"] == "Easy on the food"


# --- batch sweeps ---

@pytest.mark.asyncio
async def test_batch_absorbs_generation_failure(make_dispatcher, repository):
    budgets = [
        make_budget(id="b1", category="Food", spent=450),
        make_budget(id="b2", category="Fuel", spent=480),
        make_budget(id="b3", category="Travel", spent=520),
    ]
    ok = '{"subject": "Heads up", "body": "<p>Budget update</p>"}'
    router = FakeRouter([success_reply(ok), RuntimeError("upstream 503"), success_reply(ok)])

    outcomes = await make_dispatcher(router=router).process_all_budgets(budgets)

    assert len(outcomes) == 3
    by_id = {o.budget_id: o for o in outcomes}
    assert set(by_id) == {"b1", "b2", "b3"}
    assert all(o.status == "sent" for o in outcomes)
    assert sum(o.used_fallback for o in outcomes) == 1


@pytest.mark.asyncio
async def test_batch_isolates_errors(make_dispatcher, repository):
    budgets = [
        make_budget(id="b1"),
        Budget(id="b2", user_id="u1", category=None, spent=450, total=500),
        make_budget(id="b3", category="Rent", spent=0),
    ]
    outcomes = await make_dispatcher().process_all_budgets(budgets)

    by_id = {o.budget_id: o.status for o in outcomes}
    assert by_id == {"b1": "sent", "b2": "error", "b3": "skipped"}


@pytest.mark.asyncio
async def test_batch_persistence_failure_is_reported_not_raised(make_dispatcher, repository):
    repository.fail_on.add("insert_notification")
    outcomes = await make_dispatcher().process_all_budgets([make_budget(id="b1"), make_budget(id="b2")])
    assert [o.status for o in outcomes] == ["error", "error"]


@pytest.mark.asyncio
async def test_run_sweep_reads_every_stored_budget(make_dispatcher, repository):
    repository.budgets = [make_budget(id="b1"), make_budget(id="b2", user_id="u2", spent=10)]
    outcomes = await make_dispatcher().run_sweep()
    assert sorted(o.status for o in outcomes) == ["sent", "skipped"]


# --- weekly summaries ---

@pytest.mark.asyncio
async def test_weekly_summary_is_one_per_user(make_dispatcher, repository, email_service):
    budgets = [
        make_budget(id="b1", user_id="u1", category="Food", spent=460),
        make_budget(id="b2", user_id="u1", category="Rent", spent=100, total=1500),
        make_budget(id="b3", user_id="u2", category="Fuel", spent=20, total=100),
    ]
    outcomes = await make_dispatcher().process_weekly_summaries(budgets)

    assert sorted(o.user_id for o in outcomes) == ["u1", "u2"]
    assert {o.user_id: o.budget_count for o in outcomes} == {"u1": 2, "u2": 1}
    assert all(o.status == "sent" for o in outcomes)
    assert sorted(repository.email_lookups) == ["u1", "u2"]
    assert len(email_service.sent) == 2
    assert [n.type for n in repository.notifications] == ["weekly_summary", "weekly_summary"]
    assert all("summary is ready" in n.message for n in repository.notifications)
    assert repository.alert_events == []


@pytest.mark.asyncio
async def test_weekly_summary_persistence_failure(make_dispatcher, repository):
    repository.fail_on.add("insert_notification")
    outcomes = await make_dispatcher().process_weekly_summaries([make_budget()])
    assert outcomes[0].status == "error"
