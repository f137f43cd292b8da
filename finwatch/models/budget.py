from datetime import datetime, timezone

from sqlalchemy import Column, String, Float, DateTime
from finwatch.database import Base


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(36), nullable=False, index=True)
    category = Column(String(50), nullable=False)
    total = Column(Float, nullable=False)
    spent = Column(Float, nullable=False, default=0.0)
    period = Column(String(20), default="monthly")  # weekly/monthly
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
