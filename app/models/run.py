"""Automation run model."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, Text, Uuid

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationRun(Base):
    """One execution of the automation cycle and its summarized outcome."""

    __tablename__ = "automation_runs"

    run_id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    finished_at = Column(DateTime(timezone=True))  # NULL while the run is open
    status = Column(Text, nullable=False)  # 'running', 'success', 'partial', 'error'
    scheduler_invocation_at = Column(DateTime(timezone=True))
    channels_planned = Column(Integer, nullable=False, default=0)
    channels_processed = Column(Integer, nullable=False, default=0)
    jobs_created = Column(Integer, nullable=False, default=0)
    errors_count = Column(Integer, nullable=False, default=0)
    last_error_message = Column(Text)
    timezone = Column(Text, nullable=False)

    __table_args__ = (
        Index("idx_automation_runs_started_at", "started_at"),
        Index("idx_automation_runs_status", "status"),
    )
