# Import all models so they register with SQLAlchemy Base.metadata
# This ensures Base.metadata.create_all() creates all tables

from finwatch.models.budget import Budget
from finwatch.models.alert_event import AlertEvent
from finwatch.models.notification import Notification
from finwatch.models.profile import Profile

__all__ = [
    "Budget",
    "AlertEvent",
    "Notification",
    "Profile",
]
