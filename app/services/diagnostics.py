"""Read-side queries behind the automation debug surface."""

from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.config import Settings, settings
from app.schemas.run import RunDetails, RunRecord, SystemSnapshot
from app.services.channels import ChannelRegistry
from app.services.run_store import RunId, RunStore


def clamp_limit(limit: Optional[int], config: Settings = settings) -> int:
    if limit is None:
        return config.DEBUG_RUNS_DEFAULT_LIMIT
    return max(1, min(limit, config.DEBUG_RUNS_MAX_LIMIT))


def list_recent_runs(store: RunStore, limit: Optional[int] = None, config: Settings = settings) -> List[RunRecord]:
    """Most recent runs first, at most ``limit`` of them."""
    return store.list_runs(clamp_limit(limit, config))


def get_run_details(store: RunStore, run_id: RunId) -> Optional[RunDetails]:
    """One run with its ordered events, or None if it does not exist."""
    run = store.get_run(run_id)
    if run is None:
        return None
    return RunDetails(run=run, events=store.list_events(run.run_id))


def timezone_display(name: str) -> str:
    """Render a zone name with its current UTC offset, e.g. 'Asia/Almaty (UTC+05:00)'."""
    try:
        offset = datetime.now(ZoneInfo(name)).strftime("%z")
    except (ZoneInfoNotFoundError, ValueError):
        return name
    return f"{name} (UTC{offset[:3]}:{offset[3:]})"


def get_system_snapshot(
    store: RunStore,
    registry: ChannelRegistry,
    config: Settings = settings,
) -> SystemSnapshot:
    """Current automation configuration with the last successful run time."""
    return SystemSnapshot(
        timezone=config.AUTOMATION_TIMEZONE,
        timezone_display=timezone_display(config.AUTOMATION_TIMEZONE),
        automation_enabled=config.AUTOMATION_ENABLED,
        enabled_channels_count=registry.count_enabled_channels(),
        last_successful_run_time=store.last_successful_run_at(),
        scheduler_job_id=config.SCHEDULER_JOB_ID,
        scheduler_schedule=config.SCHEDULER_SCHEDULE,
        scheduler_timezone=config.SCHEDULER_TIMEZONE,
    )
