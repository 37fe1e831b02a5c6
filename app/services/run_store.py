"""Persistence for automation runs and events."""

import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.errors import StoreError
from app.models.event import AutomationEvent
from app.models.run import AutomationRun
from app.schemas.run import EventCreate, EventRecord, RunCreate, RunRecord, RunStatus

logger = logging.getLogger(__name__)

RunId = Union[str, uuid.UUID]

RUN_PATCH_FIELDS = {
    "finished_at",
    "status",
    "scheduler_invocation_at",
    "channels_planned",
    "channels_processed",
    "jobs_created",
    "errors_count",
    "last_error_message",
    "timezone",
}


class RunStore(Protocol):
    """Persistence collaborator used by the run ledger and diagnostics."""

    def create_run(self, init: RunCreate) -> RunRecord: ...

    def update_run(self, run_id: RunId, patch: Dict[str, Any]) -> None: ...

    def append_event(self, event: EventCreate, counters: Optional[Dict[str, int]] = None) -> None: ...

    def list_runs(self, limit: int) -> List[RunRecord]: ...

    def get_run(self, run_id: RunId) -> Optional[RunRecord]: ...

    def list_events(self, run_id: RunId) -> List[EventRecord]: ...

    def last_successful_run_at(self) -> Optional[datetime]: ...


def _as_uuid(run_id: RunId) -> uuid.UUID:
    return run_id if isinstance(run_id, uuid.UUID) else uuid.UUID(str(run_id))


def _column_values(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - RUN_PATCH_FIELDS
    if unknown:
        raise StoreError(f"Unknown run fields: {sorted(unknown)}")
    return {key: value.value if isinstance(value, Enum) else value for key, value in patch.items()}


class SqlRunStore:
    """SQLAlchemy-backed run store.

    Every database error is rolled back and re-raised as StoreError.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _load_run(self, db: Session, run_id: RunId) -> AutomationRun:
        run = db.query(AutomationRun).filter(AutomationRun.run_id == _as_uuid(run_id)).first()
        if not run:
            raise StoreError(f"Run {run_id} not found")
        return run

    def create_run(self, init: RunCreate) -> RunRecord:
        """Insert a new run with zeroed counters."""
        db = self.session_factory()
        try:
            run = AutomationRun(
                started_at=init.started_at,
                status=init.status.value,
                scheduler_invocation_at=init.scheduler_invocation_at,
                channels_planned=init.channels_planned,
                channels_processed=0,
                jobs_created=0,
                errors_count=0,
                timezone=init.timezone,
            )
            db.add(run)
            db.commit()
            db.refresh(run)
            logger.info(f"Created automation run {run.run_id}")
            return RunRecord.model_validate(run)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to create run: {e}") from e
        finally:
            db.close()

    def update_run(self, run_id: RunId, patch: Dict[str, Any]) -> None:
        """Merge-patch run columns."""
        values = _column_values(patch)
        db = self.session_factory()
        try:
            run = self._load_run(db, run_id)
            for key, value in values.items():
                setattr(run, key, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to update run {run_id}: {e}") from e
        finally:
            db.close()

    def append_event(self, event: EventCreate, counters: Optional[Dict[str, int]] = None) -> None:
        """
        Append one event, optionally patching run counters in the same transaction.

        Args:
            event: Event to append
            counters: Counter columns to write alongside the event
        """
        values = _column_values(counters or {})
        db = self.session_factory()
        try:
            db.add(
                AutomationEvent(
                    run_id=event.run_id,
                    created_at=event.created_at,
                    level=event.level.value,
                    step=event.step.value,
                    channel_id=event.channel_id,
                    channel_name=event.channel_name,
                    message=event.message,
                    details=event.details,
                )
            )
            if values:
                run = self._load_run(db, event.run_id)
                for key, value in values.items():
                    setattr(run, key, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to append event for run {event.run_id}: {e}") from e
        except StoreError:
            db.rollback()
            raise
        finally:
            db.close()

    def list_runs(self, limit: int) -> List[RunRecord]:
        """Most recent runs first."""
        db = self.session_factory()
        try:
            runs = (
                db.query(AutomationRun)
                .order_by(AutomationRun.started_at.desc())
                .limit(limit)
                .all()
            )
            return [RunRecord.model_validate(r) for r in runs]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to list runs: {e}") from e
        finally:
            db.close()

    def get_run(self, run_id: RunId) -> Optional[RunRecord]:
        db = self.session_factory()
        try:
            run = db.query(AutomationRun).filter(AutomationRun.run_id == _as_uuid(run_id)).first()
            return RunRecord.model_validate(run) if run else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load run {run_id}: {e}") from e
        finally:
            db.close()

    def list_events(self, run_id: RunId) -> List[EventRecord]:
        """Events of one run in append order."""
        db = self.session_factory()
        try:
            events = (
                db.query(AutomationEvent)
                .filter(AutomationEvent.run_id == _as_uuid(run_id))
                .order_by(AutomationEvent.created_at, AutomationEvent.event_pk)
                .all()
            )
            return [EventRecord.model_validate(e) for e in events]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load events for run {run_id}: {e}") from e
        finally:
            db.close()

    def last_successful_run_at(self) -> Optional[datetime]:
        db = self.session_factory()
        try:
            run = (
                db.query(AutomationRun)
                .filter(
                    AutomationRun.status == RunStatus.SUCCESS.value,
                    AutomationRun.finished_at.isnot(None),
                )
                .order_by(AutomationRun.finished_at.desc())
                .first()
            )
            return run.finished_at if run else None
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load last successful run: {e}") from e
        finally:
            db.close()
