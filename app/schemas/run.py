"""Run and event Pydantic schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class RunStatus(str, Enum):
    """Run lifecycle state. RUNNING is the only non-terminal value."""

    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"


class EventLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventStep(str, Enum):
    SELECT_CHANNELS = "select-channels"
    CHANNEL_CHECK = "channel-check"
    GENERATE_IDEA = "generate-idea"
    GENERATE_PROMPT = "generate-prompt"
    CREATE_JOB = "create-job"
    SEND_TO_BOT = "send-to-bot"
    UPDATE_CHANNEL_NEXT_RUN = "update-channel-next-run"
    OTHER = "other"


class RunCreate(BaseModel):
    """Initial values for a new run."""

    started_at: datetime
    status: RunStatus = RunStatus.RUNNING
    timezone: str
    channels_planned: int = 0
    scheduler_invocation_at: Optional[datetime] = None


class RunRecord(BaseModel):
    """Persisted run as exposed to the diagnostic surface."""

    model_config = ConfigDict(from_attributes=True)

    run_id: UUID
    started_at: datetime
    finished_at: Optional[datetime] = None
    status: RunStatus
    scheduler_invocation_at: Optional[datetime] = None
    channels_planned: int
    channels_processed: int
    jobs_created: int
    errors_count: int
    last_error_message: Optional[str] = None
    timezone: str


class EventCreate(BaseModel):
    """Event as handed to the store."""

    run_id: UUID
    created_at: datetime
    level: EventLevel
    step: EventStep
    message: str
    channel_id: Optional[str] = None
    channel_name: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class EventRecord(EventCreate):
    """Persisted event."""

    model_config = ConfigDict(from_attributes=True)


class RunDetails(BaseModel):
    """A run with its full ordered event list."""

    run: RunRecord
    events: List[EventRecord]


class SystemSnapshot(BaseModel):
    """Current automation configuration and health at a glance."""

    timezone: str
    timezone_display: str
    automation_enabled: bool
    enabled_channels_count: int
    last_successful_run_time: Optional[datetime] = None
    scheduler_job_id: str
    scheduler_schedule: str
    scheduler_timezone: str
