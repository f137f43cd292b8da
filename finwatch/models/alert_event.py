from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, UniqueConstraint
from finwatch.database import Base


class AlertEvent(Base):
    __tablename__ = "budget_alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=False)
    budget_id = Column(String(36), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    amount_spent = Column(Float, nullable=False)
    total_budget = Column(Float, nullable=False)
    percentage_used = Column(Float, nullable=False)
    percentage_bucket = Column(Integer, nullable=False)  # 75/90/100
    email_sent_to = Column(String(320), nullable=True)
    email_delivered = Column(Boolean, default=False)
    dedupe_key = Column(String(120), nullable=False)  # budget:bucket:window
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("dedupe_key", name="uq_budget_alert_dedupe_key"),
    )
