"""
alert_dispatcher.py - Budget Alert Dispatch
Runs evaluate → cooldown check → content → email → alert log → in-app
notification for single budgets, periodic sweeps, and weekly summaries.
The alert log row is written before the email goes out, so racing
dispatches for the same bucket cannot both send. Email is at-most-once per
claim: a failed send is recorded, not retried.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone

from finwatch.exceptions import DuplicateAlertError, InvalidDispatchRequest, PersistenceError
from finwatch.repositories.base import AlertRepository
from finwatch.schemas import AlertEvent, AlertOutcome, Budget, Notification, SummaryOutcome
from finwatch.services.content_service import SINGLE_ALERT, WEEKLY_SUMMARY, ContentGenerator
from finwatch.services.dedup_service import AlertDeduplicator
from finwatch.services.email_service import EmailService
from finwatch.services.threshold_service import ThresholdEvaluator, bucket_label

logger = logging.getLogger(__name__)

REQUIRED_BUDGET_FIELDS = ("id", "user_id", "category")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertDispatcher:
    def __init__(
        self,
        repository: AlertRepository,
        content_generator: ContentGenerator,
        email_service: EmailService,
        evaluator: ThresholdEvaluator | None = None,
        deduplicator: AlertDeduplicator | None = None,
        max_concurrency: int = 5,
        clock=_utcnow,
    ):
        self.repository = repository
        self.content_generator = content_generator
        self.email_service = email_service
        self.evaluator = evaluator or ThresholdEvaluator()
        self.deduplicator = deduplicator or AlertDeduplicator()
        self.max_concurrency = max(1, max_concurrency)
        self.clock = clock

    # ------------------------------------------------------------------
    async def process_budget(
        self,
        budget: Budget,
        user_email: str | None = None,
        now: datetime | None = None,
    ) -> AlertOutcome:
        """Dispatch one budget. Raises InvalidDispatchRequest before doing any work."""
        missing = [f for f in REQUIRED_BUDGET_FIELDS if not getattr(budget, f, None)]
        if missing:
            raise InvalidDispatchRequest(missing)

        result = self.evaluator.evaluate(budget.spent, budget.total)
        outcome = AlertOutcome(
            budget_id=budget.id,
            user_id=budget.user_id,
            category=budget.category,
            status="skipped",
            percentage=result.percentage,
            bucket=result.bucket,
        )
        if not result.alertable:
            logger.debug("Budget %s (%s) at %s: no alert", budget.id, budget.category, result.bucket)
            return outcome

        now = now or self.clock()
        try:
            history = await self.repository.list_alert_events(
                budget.id, since=now - self.deduplicator.cooldown
            )
        except PersistenceError as e:
            logger.error("Could not read alert history for budget %s: %s", budget.id, e)
            return outcome.model_copy(update={"status": "error", "error": str(e)})

        if not self.deduplicator.should_alert(budget.id, result.bucket, history, now=now):
            logger.info(
                "Budget %s (%s) at %s%% still cooling down; skipping",
                budget.id, budget.category, result.bucket,
            )
            return outcome.model_copy(update={"status": "skipped_cooldown"})

        recipient = user_email or await self.repository.get_user_email(budget.user_id)

        # The log row is the claim on (budget, bucket, window); only its writer emails
        event = AlertEvent(
            user_id=budget.user_id,
            budget_id=budget.id,
            category=budget.category,
            amount_spent=budget.spent,
            total_budget=budget.total,
            percentage_used=result.percentage,
            percentage_bucket=result.bucket,
            email_sent_to=recipient,
            email_delivered=False,
            dedupe_key=self.deduplicator.dedupe_key(budget.id, result.bucket, now),
            created_at=now,
        )
        try:
            await self.repository.insert_alert_event(event)
        except DuplicateAlertError:
            logger.warning("Concurrent alert for budget %s at %s%% already claimed", budget.id, result.bucket)
            return outcome.model_copy(update={"status": "skipped_cooldown"})
        except PersistenceError as e:
            logger.error("Alert log write failed for budget %s: %s", budget.id, e)
            return outcome.model_copy(update={"status": "error", "error": str(e)})

        content = await self.content_generator.generate(
            SINGLE_ALERT,
            {
                "category": budget.category,
                "spent": budget.spent,
                "total": budget.total,
                "percentage": result.percentage,
                "severity": result.severity,
            },
        )
        outcome = outcome.model_copy(update={"used_fallback": content.used_fallback})

        delivered = False
        if recipient:
            delivery = await self.email_service.send(recipient, content.subject, content.body)
            delivered = delivery.get("status") == "sent"
            if delivery.get("status") == "failed":
                logger.error("Alert email for budget %s not delivered: %s", budget.id, delivery.get("error"))
        else:
            logger.warning("No contact address for user %s; budget %s alert not emailed", budget.user_id, budget.id)
        outcome = outcome.model_copy(update={"email_delivered": delivered})

        if delivered:
            try:
                await self.repository.mark_alert_delivered(event.dedupe_key)
            except PersistenceError as e:
                logger.error("Delivery flag write failed for budget %s: %s", budget.id, e)
                return outcome.model_copy(update={"status": "error", "error": str(e)})

        notification = Notification(
            user_id=budget.user_id,
            type="budget_alert",
            title=f"{bucket_label(result.bucket)}: Budget Alert",
            message=f"Your {budget.category} budget is at {result.percentage:.0f}% utilization.",
            created_at=now,
        )
        try:
            await self.repository.insert_notification(notification)
        except PersistenceError as e:
            logger.error("Notification write failed for budget %s: %s", budget.id, e)
            return outcome.model_copy(update={"status": "error", "error": str(e)})

        logger.info(
            "Sent %s alert for budget %s (%s) at %.1f%%",
            result.severity, budget.id, budget.category, result.percentage,
        )
        return outcome.model_copy(update={"status": "sent"})

    # ------------------------------------------------------------------
    async def process_all_budgets(self, budgets: list[Budget]) -> list[AlertOutcome]:
        """One outcome per input budget; never raises."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(budget: Budget) -> AlertOutcome:
            async with semaphore:
                try:
                    return await self.process_budget(budget)
                except Exception as e:
                    logger.error("Dispatch failed for budget %s: %s", getattr(budget, "id", None), e)
                    return AlertOutcome(
                        budget_id=getattr(budget, "id", None),
                        user_id=getattr(budget, "user_id", None),
                        category=getattr(budget, "category", None),
                        status="error",
                        error=str(e),
                    )

        return list(await asyncio.gather(*(guarded(b) for b in budgets)))

    async def run_sweep(self) -> list[AlertOutcome]:
        """Periodic sweep over every stored budget."""
        budgets = await self.repository.list_budgets()
        logger.info("Budget sweep: checking %d budgets", len(budgets))
        outcomes = await self.process_all_budgets(budgets)
        logger.info(
            "Budget sweep done: %d sent, %d errors",
            sum(1 for o in outcomes if o.status == "sent"),
            sum(1 for o in outcomes if o.status == "error"),
        )
        return outcomes

    # ------------------------------------------------------------------
    async def process_weekly_summaries(self, budgets: list[Budget]) -> list[SummaryOutcome]:
        """One summary per user, not per budget; never raises."""
        by_user: dict[str, list[Budget]] = defaultdict(list)
        for b in budgets:
            if not b.user_id:
                logger.warning("Budget %s has no owner; left out of weekly summaries", b.id)
                continue
            by_user[b.user_id].append(b)

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(user_id: str, user_budgets: list[Budget]) -> SummaryOutcome:
            async with semaphore:
                try:
                    return await self._summarize_user(user_id, user_budgets)
                except Exception as e:
                    logger.error("Weekly summary failed for user %s: %s", user_id, e)
                    return SummaryOutcome(
                        user_id=user_id, status="error", budget_count=len(user_budgets), error=str(e)
                    )

        return list(await asyncio.gather(*(guarded(u, bs) for u, bs in by_user.items())))

    async def _summarize_user(self, user_id: str, budgets: list[Budget]) -> SummaryOutcome:
        recipient = await self.repository.get_user_email(user_id)
        content = await self.content_generator.generate(WEEKLY_SUMMARY, {"budgets": budgets})

        delivered = False
        if recipient:
            delivery = await self.email_service.send(recipient, content.subject, content.body)
            delivered = delivery.get("status") == "sent"
            if delivery.get("status") == "failed":
                logger.error("Weekly summary email for user %s not delivered: %s", user_id, delivery.get("error"))
        else:
            logger.warning("No contact address for user %s; weekly summary not emailed", user_id)

        outcome = SummaryOutcome(
            user_id=user_id,
            status="sent",
            budget_count=len(budgets),
            used_fallback=content.used_fallback,
            email_delivered=delivered,
        )
        try:
            await self.repository.insert_notification(
                Notification(
                    user_id=user_id,
                    type="weekly_summary",
                    title="Weekly Budget Summary",
                    message=f"Your weekly budget summary is ready. {content.subject}",
                    created_at=self.clock(),
                )
            )
        except PersistenceError as e:
            logger.error("Summary notification write failed for user %s: %s", user_id, e)
            return outcome.model_copy(update={"status": "error", "error": str(e)})

        logger.info("Weekly summary ready for user %s (%d budgets)", user_id, len(budgets))
        return outcome

    async def run_weekly_summaries(self) -> list[SummaryOutcome]:
        budgets = await self.repository.list_budgets()
        return await self.process_weekly_summaries(budgets)
