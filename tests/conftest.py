import asyncio
from datetime import datetime, timezone

import pytest

from finwatch.exceptions import DuplicateAlertError, PersistenceError
from finwatch.repositories.base import AlertRepository
from finwatch.schemas import Budget
from finwatch.services.alert_dispatcher import AlertDispatcher
from finwatch.services.content_service import ContentGenerator
from finwatch.services.dedup_service import AlertDeduplicator


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class InMemoryRepository(AlertRepository):
    def __init__(self, budgets=None, emails=None):
        self.budgets = list(budgets or [])
        self.emails = dict(emails or {})
        self.alert_events = []
        self.notifications = []
        self.fail_on = set()
        self.email_lookups = []
        self.history_delay = 0

    def _check(self, op):
        if op in self.fail_on:
            raise PersistenceError(op, "simulated outage")

    async def list_budgets(self, user_id=None):
        self._check("list_budgets")
        return [b for b in self.budgets if user_id is None or b.user_id == user_id]

    async def list_alert_events(self, budget_id, since=None):
        self._check("list_alert_events")
        if self.history_delay:
            await asyncio.sleep(self.history_delay)
        events = [e for e in self.alert_events if e.budget_id == budget_id]
        if since is not None:
            events = [e for e in events if e.created_at >= since]
        return sorted(events, key=lambda e: e.created_at, reverse=True)

    async def insert_alert_event(self, event):
        self._check("insert_alert_event")
        if any(e.dedupe_key == event.dedupe_key for e in self.alert_events):
            raise DuplicateAlertError(event.dedupe_key)
        stored = event.model_copy(update={"id": str(len(self.alert_events) + 1)})
        self.alert_events.append(stored)
        return stored

    async def mark_alert_delivered(self, dedupe_key):
        self._check("mark_alert_delivered")
        for i, e in enumerate(self.alert_events):
            if e.dedupe_key == dedupe_key:
                self.alert_events[i] = e.model_copy(update={"email_delivered": True})

    async def insert_notification(self, notification):
        self._check("insert_notification")
        stored = notification.model_copy(update={"id": str(len(self.notifications) + 1)})
        self.notifications.append(stored)
        return stored

    async def list_notifications(self, user_id, unread_only=False):
        notes = [n for n in self.notifications if n.user_id == user_id and not (unread_only and n.read)]
        return sorted(notes, key=lambda n: n.created_at, reverse=True)

    async def mark_notification_read(self, user_id, notification_id):
        for i, n in enumerate(self.notifications):
            if n.id == str(notification_id) and n.user_id == user_id:
                self.notifications[i] = n.model_copy(update={"read": True})
                return True
        return False

    async def get_user_email(self, user_id):
        self.email_lookups.append(user_id)
        return self.emails.get(user_id)


class FakeRouter:
    """Stands in for LLMRouter; replies from a script, raising on Exception entries."""

    available = True

    def __init__(self, replies=None, vision=True):
        self.replies = list(replies or [])
        self.vision = vision
        self.calls = []

    def has_vision(self):
        return self.vision

    async def route(self, messages, **kwargs):
        self.calls.append((messages, kwargs))
        reply = self.replies.pop(0) if self.replies else {"status": "error", "text": None, "error": "no reply"}
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeEmailService:
    def __init__(self, status="sent"):
        self.status = status
        self.sent = []

    async def send(self, to, subject, html_body):
        self.sent.append({"to": to, "subject": subject, "html": html_body})
        return {"status": self.status, "id": "email-1" if self.status == "sent" else None, "error": None}


def make_budget(id="b1", user_id="u1", category="Food", spent=450.0, total=500.0):
    return Budget(id=id, user_id=user_id, category=category, spent=spent, total=total)


def success_reply(text):
    return {"status": "success", "text": text, "provider": "fake", "model": "fake-1", "error": None}


@pytest.fixture
def repository():
    return InMemoryRepository(emails={"u1": "asha@example.com", "u2": "ravi@example.com"})


@pytest.fixture
def email_service():
    return FakeEmailService()


@pytest.fixture
def make_dispatcher(repository, email_service):
    def _make(router=None, clock=lambda: NOW):
        return AlertDispatcher(
            repository=repository,
            content_generator=ContentGenerator(llm_router=router, timeout=1.0),
            email_service=email_service,
            deduplicator=AlertDeduplicator(cooldown_hours=24),
            clock=clock,
        )
    return _make
