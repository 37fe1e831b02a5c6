"""Append-only audit trail of step-level automation events."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from app.schemas.run import EventCreate, EventLevel, EventStep
from app.services.run_store import RunStore

logger = logging.getLogger(__name__)


class EventRecorder:
    """Stamps events with the bound run id and the current time, then appends them.

    Raises StoreError from the store unchanged; the run ledger owns the
    decision to swallow it.
    """

    def __init__(
        self,
        store: RunStore,
        run_id: uuid.UUID,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self.run_id = run_id
        self.clock = clock

    def build(
        self,
        level: EventLevel,
        step: EventStep,
        message: str,
        channel_id: Optional[str] = None,
        channel_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> EventCreate:
        return EventCreate(
            run_id=self.run_id,
            created_at=self.clock(),
            level=EventLevel(level),
            step=EventStep(step),
            message=message,
            channel_id=channel_id,
            channel_name=channel_name,
            details=details,
        )

    def append(self, event: EventCreate, counters: Optional[Dict[str, int]] = None) -> None:
        self.store.append_event(event, counters)
        logger.debug(f"[{event.run_id}] {event.level.value} {event.step.value}: {event.message}")
