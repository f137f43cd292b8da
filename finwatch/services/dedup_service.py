"""
dedup_service.py - Alert Cooldown
Suppresses a repeat alert for the same (budget, bucket) inside the cooldown
window. A worse bucket is never held back by a milder bucket's cooldown.
"""

from datetime import datetime, timedelta, timezone

from finwatch.schemas import AlertEvent


DEFAULT_COOLDOWN_HOURS = 24


def _aware(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


class AlertDeduplicator:
    def __init__(self, cooldown_hours: float = DEFAULT_COOLDOWN_HOURS):
        self.cooldown = timedelta(hours=cooldown_hours)

    def should_alert(
        self,
        budget_id: str,
        bucket: int,
        history: list[AlertEvent],
        now: datetime | None = None,
    ) -> bool:
        """Allow unless an alert at this exact bucket was sent within the window."""
        now = _aware(now or datetime.now(timezone.utc))
        latest = None
        for event in history:
            if str(event.budget_id) != str(budget_id) or event.percentage_bucket != bucket:
                continue
            created = _aware(event.created_at)
            if latest is None or created > latest:
                latest = created

        if latest is None:
            return True
        return now - latest >= self.cooldown

    def window_index(self, ts: datetime) -> int:
        return int(_aware(ts).timestamp() // self.cooldown.total_seconds())

    def dedupe_key(self, budget_id: str, bucket: int, ts: datetime) -> str:
        """Storage uniqueness key; two racing inserts in one window collide."""
        return f"{budget_id}:{bucket}:{self.window_index(ts)}"
