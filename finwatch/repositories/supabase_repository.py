import logging
from datetime import datetime

from finwatch.exceptions import DuplicateAlertError, PersistenceError
from finwatch.repositories.base import AlertRepository
from finwatch.schemas import AlertEvent, Budget, Notification
from finwatch.supabase_rest import PostgrestError, SupabaseRest

logger = logging.getLogger(__name__)

BUDGETS_TABLE = "budgets"
ALERTS_TABLE = "budget_alerts"
NOTIFICATIONS_TABLE = "notifications"


class SupabaseRepository(AlertRepository):
    """Budgets, alert log and notifications stored in Supabase tables."""

    def __init__(self, rest: SupabaseRest, admin=None):
        self.rest = rest
        # SupabaseAdmin or anything with an async get_user_email(user_id)
        self.admin = admin

    async def list_budgets(self, user_id: str | None = None) -> list[Budget]:
        try:
            rows = await self.rest.select(
                BUDGETS_TABLE,
                filters={"user_id": user_id} if user_id is not None else None,
                columns="id,user_id,category,total,spent",
            )
        except Exception as e:
            raise PersistenceError("list_budgets", str(e)) from e
        return [Budget(**r) for r in rows]

    async def list_alert_events(self, budget_id: str, since: datetime | None = None) -> list[AlertEvent]:
        query_string = None
        if since is not None:
            query_string = "created_at=gte." + since.isoformat().replace("+", "%2B")
        try:
            rows = await self.rest.select(
                ALERTS_TABLE,
                filters={"budget_id": budget_id},
                query_string=query_string,
                order="created_at.desc",
            )
        except Exception as e:
            raise PersistenceError("list_alert_events", str(e)) from e
        return [AlertEvent(**r) for r in rows]

    async def insert_alert_event(self, event: AlertEvent) -> AlertEvent:
        try:
            row = await self.rest.insert(ALERTS_TABLE, event.model_dump(mode="json", exclude={"id"}))
        except PostgrestError as e:
            # 409 is PostgREST's answer to a unique violation on dedupe_key
            if e.status_code == 409:
                raise DuplicateAlertError(event.dedupe_key or "") from e
            raise PersistenceError("insert_alert_event", str(e)) from e
        except Exception as e:
            raise PersistenceError("insert_alert_event", str(e)) from e
        return AlertEvent(**row) if row else event

    async def mark_alert_delivered(self, dedupe_key: str) -> None:
        try:
            await self.rest.update(ALERTS_TABLE, {"dedupe_key": dedupe_key}, {"email_delivered": True})
        except Exception as e:
            raise PersistenceError("mark_alert_delivered", str(e)) from e

    async def insert_notification(self, notification: Notification) -> Notification:
        try:
            row = await self.rest.insert(NOTIFICATIONS_TABLE, notification.model_dump(mode="json", exclude={"id"}))
        except Exception as e:
            raise PersistenceError("insert_notification", str(e)) from e
        return Notification(**row) if row else notification

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        filters = {"user_id": user_id}
        if unread_only:
            filters["read"] = "false"
        try:
            rows = await self.rest.select(NOTIFICATIONS_TABLE, filters=filters, order="created_at.desc")
        except Exception as e:
            raise PersistenceError("list_notifications", str(e)) from e
        return [Notification(**r) for r in rows]

    async def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        try:
            rows = await self.rest.update(
                NOTIFICATIONS_TABLE, {"id": notification_id, "user_id": user_id}, {"read": True}
            )
        except Exception as e:
            raise PersistenceError("mark_notification_read", str(e)) from e
        return bool(rows)

    async def get_user_email(self, user_id: str) -> str | None:
        if self.admin is None:
            return None
        return await self.admin.get_user_email(user_id)
