"""
threshold_service.py - Budget Utilization Tiers
Turns a budget's spent/total into a utilization percentage and the alert
bucket (75/90/100) it has reached.
"""

from finwatch.schemas import BUCKET_NONE, BUCKET_NOT_APPLICABLE, ThresholdResult


ALERT_THRESHOLDS = (75, 90, 100)

SEVERITY_BY_BUCKET = {
    75: "warning",
    90: "critical",
    100: "exceeded",
    BUCKET_NONE: "healthy",
    BUCKET_NOT_APPLICABLE: "not_applicable",
}


class ThresholdEvaluator:
    def __init__(self, thresholds: tuple[int, ...] = ALERT_THRESHOLDS):
        # Highest first so the first threshold met is the bucket
        self.thresholds = tuple(sorted(thresholds, reverse=True))

    def evaluate(self, spent: float, total: float) -> ThresholdResult:
        """Percentage is not clamped; anything past 100 is 'exceeded'."""
        if total is None or total <= 0:
            return ThresholdResult(
                percentage=0.0,
                bucket=BUCKET_NOT_APPLICABLE,
                severity=SEVERITY_BY_BUCKET[BUCKET_NOT_APPLICABLE],
            )

        percentage = (float(spent or 0) / float(total)) * 100
        bucket = BUCKET_NONE
        for threshold in self.thresholds:
            if percentage >= threshold:
                bucket = threshold
                break

        return ThresholdResult(
            percentage=percentage,
            bucket=bucket,
            severity=SEVERITY_BY_BUCKET.get(bucket, "warning"),
        )


def bucket_label(bucket) -> str:
    """Title-case severity used in notification titles."""
    return SEVERITY_BY_BUCKET.get(bucket, "warning").replace("_", " ").title()
