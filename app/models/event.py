"""Automation event model."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text, Uuid

from app.database import Base, JSONType


class AutomationEvent(Base):
    """Immutable step-level audit entry tied to a run."""

    __tablename__ = "automation_events"

    event_pk = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("automation_runs.run_id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), nullable=False)
    level = Column(Text, nullable=False)  # 'info', 'warn', 'error'
    step = Column(Text, nullable=False)
    channel_id = Column(Text)
    channel_name = Column(Text)
    message = Column(Text, nullable=False)
    details = Column(JSONType)

    __table_args__ = (
        Index("idx_automation_events_run_id", "run_id", "created_at"),
        Index("idx_automation_events_level", "level"),
    )
