import asyncio
import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from finwatch.exceptions import DuplicateAlertError, PersistenceError
from finwatch.models.alert_event import AlertEvent as AlertEventRow
from finwatch.models.budget import Budget as BudgetRow
from finwatch.models.notification import Notification as NotificationRow
from finwatch.models.profile import Profile
from finwatch.repositories.base import AlertRepository
from finwatch.schemas import AlertEvent, Budget, Notification

logger = logging.getLogger(__name__)


def _budget(row: BudgetRow) -> Budget:
    return Budget(id=row.id, user_id=row.user_id, category=row.category, total=row.total, spent=row.spent)


def _alert_event(row: AlertEventRow) -> AlertEvent:
    return AlertEvent(
        id=row.id,
        user_id=row.user_id,
        budget_id=row.budget_id,
        category=row.category,
        amount_spent=row.amount_spent,
        total_budget=row.total_budget,
        percentage_used=row.percentage_used,
        percentage_bucket=row.percentage_bucket,
        email_sent_to=row.email_sent_to,
        email_delivered=bool(row.email_delivered),
        dedupe_key=row.dedupe_key,
        created_at=row.created_at,
    )


def _notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        type=row.type,
        title=row.title,
        message=row.message,
        read=bool(row.read),
        created_at=row.created_at,
    )


class SqlRepository(AlertRepository):
    """SQLAlchemy-backed store for local runs and self-hosted Postgres.

    Session work is synchronous, so every call runs in a worker thread to
    keep the event loop free for concurrent dispatches.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def list_budgets(self, user_id: str | None = None) -> list[Budget]:
        return await asyncio.to_thread(self._list_budgets, user_id)

    async def list_alert_events(self, budget_id: str, since: datetime | None = None) -> list[AlertEvent]:
        return await asyncio.to_thread(self._list_alert_events, budget_id, since)

    async def insert_alert_event(self, event: AlertEvent) -> AlertEvent:
        return await asyncio.to_thread(self._insert_alert_event, event)

    async def mark_alert_delivered(self, dedupe_key: str) -> None:
        await asyncio.to_thread(self._mark_alert_delivered, dedupe_key)

    async def insert_notification(self, notification: Notification) -> Notification:
        return await asyncio.to_thread(self._insert_notification, notification)

    async def list_notifications(self, user_id: str, unread_only: bool = False) -> list[Notification]:
        return await asyncio.to_thread(self._list_notifications, user_id, unread_only)

    async def mark_notification_read(self, user_id: str, notification_id: str) -> bool:
        return await asyncio.to_thread(self._mark_notification_read, user_id, notification_id)

    async def get_user_email(self, user_id: str) -> str | None:
        return await asyncio.to_thread(self._get_user_email, user_id)

    # ------------------------------------------------------------------
    def _list_budgets(self, user_id):
        db = self.session_factory()
        try:
            query = db.query(BudgetRow)
            if user_id is not None:
                query = query.filter_by(user_id=str(user_id))
            return [_budget(b) for b in query.order_by(BudgetRow.user_id, BudgetRow.category).all()]
        except SQLAlchemyError as e:
            raise PersistenceError("list_budgets", str(e)) from e
        finally:
            db.close()

    def _list_alert_events(self, budget_id, since):
        db = self.session_factory()
        try:
            query = db.query(AlertEventRow).filter(AlertEventRow.budget_id == str(budget_id))
            if since is not None:
                query = query.filter(AlertEventRow.created_at >= since)
            rows = query.order_by(AlertEventRow.created_at.desc()).all()
            return [_alert_event(r) for r in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("list_alert_events", str(e)) from e
        finally:
            db.close()

    def _insert_alert_event(self, event):
        db = self.session_factory()
        try:
            row = AlertEventRow(**event.model_dump(exclude={"id"}))
            db.add(row)
            db.commit()
            db.refresh(row)
            return _alert_event(row)
        except IntegrityError as e:
            db.rollback()
            raise DuplicateAlertError(event.dedupe_key or "") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("insert_alert_event", str(e)) from e
        finally:
            db.close()

    def _mark_alert_delivered(self, dedupe_key):
        db = self.session_factory()
        try:
            db.query(AlertEventRow).filter_by(dedupe_key=dedupe_key).update({"email_delivered": True})
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("mark_alert_delivered", str(e)) from e
        finally:
            db.close()

    def _insert_notification(self, notification):
        db = self.session_factory()
        try:
            row = NotificationRow(**notification.model_dump(exclude={"id"}))
            db.add(row)
            db.commit()
            db.refresh(row)
            return _notification(row)
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("insert_notification", str(e)) from e
        finally:
            db.close()

    def _list_notifications(self, user_id, unread_only):
        db = self.session_factory()
        try:
            query = db.query(NotificationRow).filter_by(user_id=str(user_id))
            if unread_only:
                query = query.filter_by(read=False)
            return [_notification(n) for n in query.order_by(NotificationRow.created_at.desc()).all()]
        except SQLAlchemyError as e:
            raise PersistenceError("list_notifications", str(e)) from e
        finally:
            db.close()

    def _mark_notification_read(self, user_id, notification_id):
        try:
            pk = int(notification_id)
        except ValueError:
            return False
        db = self.session_factory()
        try:
            n = db.query(NotificationRow).filter_by(id=pk, user_id=str(user_id)).first()
            if n is None:
                return False
            n.read = True
            db.commit()
            return True
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError("mark_notification_read", str(e)) from e
        finally:
            db.close()

    def _get_user_email(self, user_id):
        db = self.session_factory()
        try:
            profile = db.query(Profile).filter_by(id=str(user_id)).first()
            return profile.email if profile else None
        except SQLAlchemyError as e:
            logger.error(f"Contact lookup for user {user_id} failed: {e}")
            return None
        finally:
            db.close()
