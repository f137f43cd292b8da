from abc import ABC, abstractmethod
from datetime import datetime

from finwatch.schemas import AlertEvent, Budget, Notification


class AlertRepository(ABC):
    """Persistence surface the alerting core reads from and appends to."""

    @abstractmethod
    async def list_budgets(self, user_id: str | None = None) -> list[Budget]:
        ...

    @abstractmethod
    async def list_alert_events(self, budget_id: str, since: datetime | None = None) -> list[AlertEvent]:
        """Alert log for one budget, newest first."""
        ...

    @abstractmethod
    async def insert_alert_event(self, event: AlertEvent) -> AlertEvent:
        """Append to the alert log. Raises DuplicateAlertError on a dedupe_key clash."""
        ...

    @abstractmethod
    async def mark_alert_delivered(self, dedupe_key: str) -> None:
        """Flag a logged alert as emailed."""
        ...

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification:
        ...

    @abstractmethod
    async def list_notifications(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        """Newest first."""
        ...

    @abstractmethod
    async def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        ...

    @abstractmethod
    async def get_user_email(self, user_id: str) -> str | None:
        ...
