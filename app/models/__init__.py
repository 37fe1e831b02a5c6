"""SQLAlchemy ORM models."""

from app.models.event import AutomationEvent
from app.models.run import AutomationRun

__all__ = [
    "AutomationRun",
    "AutomationEvent",
]
