"""
content_service.py - Alert & Summary Copy
Asks the LLM router for an email subject/body and falls back to an offline
template whenever the call fails, times out, or returns something that is
not the expected JSON object.
"""

import asyncio
import html
import json
import logging

from finwatch.schemas import Budget, GeneratedContent, WeeklySummaryStats
from finwatch.services.threshold_service import ThresholdEvaluator

logger = logging.getLogger(__name__)

SINGLE_ALERT = "single_alert"
WEEKLY_SUMMARY = "weekly_summary"
CONTENT_KINDS = (SINGLE_ALERT, WEEKLY_SUMMARY)

OVERSPENT_PERCENT = 90
HEALTHY_PERCENT = 75

ALERT_RECOMMENDATIONS = [
    "Consider reducing non-essential expenses in this category for the rest of the month.",
    "Review your spending habits and identify areas where you can save.",
    "Adjust your budget allocation if this category consistently requires more funds.",
]

SUMMARY_RECOMMENDATIONS = [
    "Move spare money from healthy categories toward the ones running hot.",
    "Set a weekly spending cap for any category above 90%.",
    "Review recurring payments and cancel the ones you no longer use.",
]

SEVERITY_MESSAGES = {
    "exceeded": "You have gone over your {category} budget ({pct:.0f}% used). Pause non-essential spending in this category until the next period.",
    "critical": "Your {category} budget is at {pct:.0f}% utilization. This is a critical alert as you've nearly exhausted your budget. Consider reviewing your spending immediately to avoid going over budget.",
    "warning": "Your {category} budget is now at {pct:.0f}%. You're approaching your limit - this is a good time to review your spending and plan for the rest of the period.",
}

SYSTEM_PROMPT = (
    "You are a friendly personal-finance assistant that writes short budget emails. "
    "Always answer with ONLY a JSON object of the form "
    '{"subject": "<one line>", "body": "<HTML email body>"} and nothing else. '
    "The body must mention the category names, the amounts with the given currency symbol, "
    "the percentage used, and two or three practical recommendations."
)


def summarize_budgets(budgets: list[Budget], evaluator: ThresholdEvaluator | None = None) -> WeeklySummaryStats:
    """Totals plus the categories at or past 90% and those still under 75%."""
    evaluator = evaluator or ThresholdEvaluator()
    total_spent = sum(float(b.spent or 0) for b in budgets)
    total_budget = sum(float(b.total or 0) for b in budgets)

    overspent, healthy = [], []
    for b in budgets:
        result = evaluator.evaluate(b.spent, b.total)
        if result.bucket == "not_applicable":
            continue
        if result.percentage >= OVERSPENT_PERCENT:
            overspent.append(b.category or "Uncategorized")
        elif result.percentage < HEALTHY_PERCENT:
            healthy.append(b.category or "Uncategorized")

    return WeeklySummaryStats(
        total_spent=total_spent,
        total_budget=total_budget,
        overall_percentage=(total_spent / total_budget * 100) if total_budget > 0 else 0.0,
        overspent=overspent,
        healthy=healthy,
        budget_count=len(budgets),
    )


class ContentGenerator:
    def __init__(
        self,
        llm_router=None,
        currency_symbol: str = "₹",
        timeout: float = 10.0,
        evaluator: ThresholdEvaluator | None = None,
        dashboard_url: str = "",
    ):
        self.llm_router = llm_router
        self.currency_symbol = currency_symbol
        self.timeout = timeout
        self.evaluator = evaluator or ThresholdEvaluator()
        self.dashboard_url = dashboard_url

    def money(self, amount: float) -> str:
        return f"{self.currency_symbol}{float(amount):,.2f}"

    # ------------------------------------------------------------------
    async def generate(self, kind: str, payload: dict) -> GeneratedContent:
        """Return {subject, body}; never raises for upstream problems."""
        if kind not in CONTENT_KINDS:
            raise ValueError(f"Unknown content kind: {kind}")

        if kind == WEEKLY_SUMMARY:
            payload = {**payload, "stats": summarize_budgets(payload.get("budgets", []), self.evaluator)}

        if self.llm_router is not None and getattr(self.llm_router, "available", True):
            try:
                prompt = self._build_prompt(kind, payload)
                resp = await asyncio.wait_for(
                    self.llm_router.route(
                        [
                            {"role": "system", "content": SYSTEM_PROMPT},
                            {"role": "user", "content": prompt},
                        ],
                        json_mode=True,
                    ),
                    timeout=self.timeout,
                )
                parsed = self._parse_response(resp)
                if parsed is not None:
                    subject, body = parsed
                    return GeneratedContent(subject=subject, body=body, provider=resp.get("provider"))
                logger.warning(
                    "Content generation for %s unusable (%s); using fallback template",
                    kind, (resp or {}).get("error") or "unparseable response",
                )
            except asyncio.TimeoutError:
                logger.warning("Content generation for %s timed out after %ss; using fallback template", kind, self.timeout)
            except Exception as e:
                logger.warning("Content generation for %s failed: %s; using fallback template", kind, e)

        if kind == SINGLE_ALERT:
            subject, body = self.fallback_single_alert(payload)
        else:
            subject, body = self.fallback_weekly_summary(payload)
        return GeneratedContent(subject=subject, body=body, used_fallback=True)

    # ------------------------------------------------------------------
    def _build_prompt(self, kind: str, payload: dict) -> str:
        if kind == SINGLE_ALERT:
            facts = {
                "category": payload["category"],
                "spent": payload["spent"],
                "total": payload["total"],
                "percentage_used": round(payload["percentage"], 1),
                "currency_symbol": self.currency_symbol,
            }
            return (
                "Write a budget alert email for a user whose category budget crossed an alert threshold. "
                "Facts: " + json.dumps(facts)
            )

        stats: WeeklySummaryStats = payload["stats"]
        facts = {
            "currency_symbol": self.currency_symbol,
            "total_spent": stats.total_spent,
            "total_budget": stats.total_budget,
            "overall_percentage": round(stats.overall_percentage, 1),
            "overspent_categories": stats.overspent,
            "healthy_categories": stats.healthy,
            "budgets": [
                {"category": b.category, "spent": b.spent, "total": b.total}
                for b in payload.get("budgets", [])
            ],
        }
        return (
            "Write a weekly budget summary email covering every budget below, calling out overspent "
            "(90% or more) and healthy (under 75%) categories. Facts: " + json.dumps(facts)
        )

    @staticmethod
    def _parse_response(resp: dict | None) -> tuple[str, str] | None:
        if not resp or resp.get("status") != "success":
            return None
        text = resp.get("text") or ""
        start = text.find("{")
        end = text.rfind("}") + 1
        if start == -1 or end == 0:
            return None
        try:
            data = json.loads(text[start:end])
        except ValueError:
            return None
        if not isinstance(data, dict):
            return None
        subject, body = data.get("subject"), data.get("body")
        if not isinstance(subject, str) or not isinstance(body, str):
            return None
        if not subject.strip() or not body.strip():
            return None
        return subject.strip(), body

    # ------------------------------------------------------------------
    def _footer(self) -> str:
        link = ""
        if self.dashboard_url:
            link = f' <a href="{html.escape(self.dashboard_url)}">Open your dashboard</a>'
        return (
            f"<p>Login to your dashboard for more detailed insights and personalized recommendations.{link}</p>"
            "<p>Best regards,<br>Your Financial Dashboard Team</p>"
        )

    def fallback_single_alert(self, payload: dict) -> tuple[str, str]:
        category = payload["category"]
        pct = float(payload["percentage"])
        severity = payload.get("severity") or self.evaluator.evaluate(payload["spent"], payload["total"]).severity
        safe_category = html.escape(category)

        if severity == "exceeded":
            subject = f"Budget Alert: Your {category} budget has been exceeded"
        else:
            subject = f"Budget Alert: Your {category} budget is running low"

        headline = SEVERITY_MESSAGES.get(severity, SEVERITY_MESSAGES["warning"]).format(category=safe_category, pct=pct)
        bullets = "".join(f"<li>{r}</li>" for r in ALERT_RECOMMENDATIONS)
        body = (
            "<h1>Budget Alert</h1>"
            "<p>Dear User,</p>"
            f"<p>{headline}</p>"
            f"<p>You have spent {self.money(payload['spent'])} out of your total budget of "
            f"{self.money(payload['total'])} for {safe_category}.</p>"
            f"<p>This means you have used {pct:.1f}% of your budget.</p>"
            f"<h2>Recommendations:</h2><ul>{bullets}</ul>"
            + self._footer()
        )
        return subject, body

    def fallback_weekly_summary(self, payload: dict) -> tuple[str, str]:
        stats: WeeklySummaryStats = payload["stats"]
        budgets: list[Budget] = payload.get("budgets", [])
        subject = (
            f"Your weekly budget summary: {self.money(stats.total_spent)} of "
            f"{self.money(stats.total_budget)} used"
        )

        rows = []
        for b in budgets:
            result = self.evaluator.evaluate(b.spent, b.total)
            pct = f"{result.percentage:.1f}%" if result.bucket != "not_applicable" else "n/a"
            rows.append(
                f"<li>{html.escape(b.category or '')}: {self.money(b.spent)} of {self.money(b.total)} ({pct})</li>"
            )

        overspent = ", ".join(html.escape(c) for c in stats.overspent) or "None"
        healthy = ", ".join(html.escape(c) for c in stats.healthy) or "None"
        bullets = "".join(f"<li>{r}</li>" for r in SUMMARY_RECOMMENDATIONS)
        body = (
            "<h1>Weekly Budget Summary</h1>"
            "<p>Dear User,</p>"
            f"<p>Across {stats.budget_count} budget(s) you have spent {self.money(stats.total_spent)} "
            f"of {self.money(stats.total_budget)} ({stats.overall_percentage:.1f}%).</p>"
            f"<ul>{''.join(rows)}</ul>"
            f"<p><strong>Needs attention (90% or more):</strong> {overspent}</p>"
            f"<p><strong>On track (under 75%):</strong> {healthy}</p>"
            f"<h2>Recommendations:</h2><ul>{bullets}</ul>"
            + self._footer()
        )
        return subject, body
