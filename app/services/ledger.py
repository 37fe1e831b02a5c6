"""Run ledger: lifecycle, counters and best-effort persistence of one automation run."""

import logging
import queue
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.config import settings
from app.errors import StoreError
from app.schemas.run import EventLevel, EventStep, RunCreate, RunStatus
from app.services.events import EventRecorder
from app.services.run_store import RUN_PATCH_FIELDS, RunStore
from app.services.status import aggregate_status

logger = logging.getLogger(__name__)

# Written only at creation and by finish()
LIFECYCLE_FIELDS = {"status", "finished_at", "errors_count", "jobs_created", "channels_processed"}
UPDATABLE_FIELDS = RUN_PATCH_FIELDS - LIFECYCLE_FIELDS


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DeadLetter:
    """A ledger write that failed after every retry."""

    operation: str
    run_id: uuid.UUID
    payload: Dict[str, Any]
    error: str
    failed_at: datetime = field(default_factory=_utcnow)


@dataclass
class PendingWrite:
    """A failed ledger write waiting for the background retry."""

    operation: str
    payload: Dict[str, Any]
    action: Callable[[], None]
    attempts: int


class RunLedger:
    """Owns one automation run.

    No public method raises because of persistence. Each write is tried once
    inline; a failed write is retried with exponential backoff on a
    background drain thread, and what still fails is logged and kept in
    ``dead_letters``. Writes reach the store in the order they were
    requested, so stored counters never go backwards even when channels are
    processed concurrently against one ledger.
    """

    def __init__(
        self,
        store: RunStore,
        run_id: uuid.UUID,
        persisted: bool = True,
        write_attempts: Optional[int] = None,
        retry_wait_seconds: Optional[float] = None,
        flush_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.run_id = run_id
        self.persisted = persisted
        self.write_attempts = max(1, write_attempts if write_attempts is not None else settings.LEDGER_WRITE_ATTEMPTS)
        self.retry_wait_seconds = (
            retry_wait_seconds if retry_wait_seconds is not None else settings.LEDGER_RETRY_WAIT_SECONDS
        )
        self.flush_timeout = flush_timeout if flush_timeout is not None else settings.LEDGER_FLUSH_TIMEOUT_SECONDS
        self.clock = clock
        self.recorder = EventRecorder(store, run_id, clock=clock)
        self.dead_letters: List[DeadLetter] = []

        self._lock = threading.Lock()
        self._errors_count = 0
        self._jobs_created = 0
        self._channels_processed = 0
        self._final_status: Optional[RunStatus] = None

        # Held from counter snapshot until the write is done or queued
        self._write_lock = threading.RLock()
        self._pending: "queue.Queue[Optional[PendingWrite]]" = queue.Queue()
        self._backlog = 0
        self._backlog_lock = threading.Lock()
        self._drain_thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @classmethod
    def open(
        cls,
        store: RunStore,
        timezone: str,
        channels_planned: int,
        scheduler_invocation_at: Optional[datetime] = None,
        **kwargs,
    ) -> "RunLedger":
        """
        Create and persist a new run, returning a ledger bound to it.

        If the run cannot be created the ledger is returned detached: it uses
        a local run id, keeps counting, and skips persistence.
        """
        clock = kwargs.get("clock", _utcnow)
        init = RunCreate(
            started_at=clock(),
            status=RunStatus.RUNNING,
            timezone=timezone,
            channels_planned=channels_planned,
            scheduler_invocation_at=scheduler_invocation_at,
        )
        try:
            run = store.create_run(init)
        except Exception as e:
            run_id = uuid.uuid4()
            logger.error(f"Failed to create automation run (non-fatal), continuing detached as {run_id}: {e}")
            return cls(store, run_id, persisted=False, **kwargs)

        return cls(store, run.run_id, **kwargs)

    # Counters

    @property
    def errors_count(self) -> int:
        return self._errors_count

    @property
    def jobs_created(self) -> int:
        return self._jobs_created

    @property
    def channels_processed(self) -> int:
        return self._channels_processed

    @property
    def is_finished(self) -> bool:
        return self._final_status is not None

    @property
    def backlog(self) -> int:
        """Writes queued for background retry."""
        with self._backlog_lock:
            return self._backlog

    def counters(self) -> Dict[str, int]:
        with self._lock:
            return self._counters_locked()

    def _counters_locked(self) -> Dict[str, int]:
        return {
            "errors_count": self._errors_count,
            "jobs_created": self._jobs_created,
            "channels_processed": self._channels_processed,
        }

    def increment_jobs_created(self) -> None:
        with self._lock:
            self._jobs_created += 1

    def increment_channels_processed(self) -> None:
        with self._lock:
            self._channels_processed += 1

    # Persistence

    def _dead_letter(self, operation: str, payload: Dict[str, Any], error: Union[str, Exception]) -> None:
        logger.error(f"[RunLedger] Failed to {operation} for run {self.run_id} (non-fatal): {error}")
        with self._backlog_lock:
            self.dead_letters.append(
                DeadLetter(operation=operation, run_id=self.run_id, payload=payload, error=str(error))
            )

    def _write(self, operation: str, payload: Dict[str, Any], action: Callable[[], None]) -> None:
        """Try a write once inline, queueing it for retry on StoreError. Caller holds the write lock."""
        if not self.persisted:
            logger.debug(f"Ledger {self.run_id} is detached, skipping {operation}")
            return

        write = PendingWrite(operation=operation, payload=payload, action=action, attempts=self.write_attempts)
        if self.backlog:
            # Queued writes go first
            self._enqueue(write)
            return

        try:
            action()
        except StoreError as e:
            write.attempts -= 1
            if write.attempts < 1:
                self._dead_letter(operation, payload, e)
                return
            logger.warning(f"[RunLedger] {operation} failed for run {self.run_id}, retrying in background: {e}")
            self._enqueue(write)
        except Exception as e:
            # Nothing escapes the ledger.
            self._dead_letter(operation, payload, e)

    def _enqueue(self, write: PendingWrite) -> None:
        with self._backlog_lock:
            self._backlog += 1
        self._pending.put(write)

        if self._drain_thread is None or not self._drain_thread.is_alive():
            self._drain_thread = threading.Thread(
                target=self._drain,
                name=f"ledger-{self.run_id}",
                daemon=True,
            )
            self._drain_thread.start()

    def _drain(self) -> None:
        """Retry queued writes in order until the flush sentinel arrives."""
        while True:
            write = self._pending.get()
            if write is None:
                self._pending.task_done()
                return
            try:
                self._retry(write)
            finally:
                with self._backlog_lock:
                    self._backlog -= 1
                self._pending.task_done()

    def _retry(self, write: PendingWrite) -> None:
        if self._stop.is_set():
            self._dead_letter(write.operation, write.payload, "ledger flushed before the write was retried")
            return

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(write.attempts),
                wait=wait_exponential(multiplier=self.retry_wait_seconds, max=5),
                retry=retry_if_exception_type(StoreError),
                sleep=self._stop.wait,
                reraise=True,
            ):
                with attempt:
                    write.action()
        except Exception as e:
            # Nothing escapes the ledger.
            self._dead_letter(write.operation, write.payload, e)

    def flush(self, timeout: Optional[float] = None) -> None:
        """
        Wait for queued retries to finish.

        After ``timeout`` seconds backoff is cut short: the write in flight
        uses its remaining attempts at once and queued writes are
        dead-lettered.
        """
        with self._write_lock:
            thread = self._drain_thread
            if thread is None or not thread.is_alive():
                return

            self._pending.put(None)
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"[RunLedger] Flush timed out for run {self.run_id}, abandoning {self.backlog} writes")
                self._stop.set()
                thread.join()
            self._stop.clear()
            self._drain_thread = None

    def record_event(
        self,
        level: EventLevel,
        step: EventStep,
        message: str,
        channel_id: Optional[str] = None,
        channel_name: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Append an event to the run's audit trail. Never raises.

        Error-level events increment the run's error counter. While the run is
        open, current counters are written in the same transaction as the
        event; after finish the stored run is left untouched.
        """
        with self._write_lock:
            try:
                event = self.recorder.build(level, step, message, channel_id, channel_name, details)
            except ValueError as e:
                logger.error(f"[RunLedger] Invalid event for run {self.run_id} (non-fatal): {e}")
                return

            with self._lock:
                if event.level is EventLevel.ERROR:
                    self._errors_count += 1
                counters = None if self._final_status is not None else self._counters_locked()

            self._write(
                "append event",
                event.model_dump(mode="json"),
                lambda: self.recorder.append(event, counters),
            )

    def _patch(self, operation: str, fields: Dict[str, Any]) -> None:
        self._write(
            operation,
            {key: str(value) for key, value in fields.items()},
            lambda: self.store.update_run(self.run_id, fields),
        )

    def update_run(self, **fields: Any) -> None:
        """
        Best-effort merge-patch of the run record. Never raises.

        Status, finished_at and the counters belong to the ledger; such keys
        are dead-lettered and the remaining fields are still written.
        """
        rejected = sorted(set(fields) - UPDATABLE_FIELDS)
        if rejected:
            self._dead_letter(
                "update run",
                {key: str(fields[key]) for key in rejected},
                f"fields not writable through update_run: {rejected}",
            )
            fields = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}

        if not fields:
            return
        with self._write_lock:
            self._patch("update run", fields)

    def finish(self) -> RunStatus:
        """
        Compute the final verdict and persist it with the counters. Never raises.

        Waits up to ``flush_timeout`` for queued retries before returning.

        Returns:
            The terminal status. Repeated calls return the first verdict
            without writing again.
        """
        with self._write_lock:
            with self._lock:
                if self._final_status is not None:
                    return self._final_status
                counters = self._counters_locked()
                status = aggregate_status(**counters)
                self._final_status = status

            logger.info(
                f"Run {self.run_id} finished with status {status.value} "
                f"(channels={counters['channels_processed']}, jobs={counters['jobs_created']}, "
                f"errors={counters['errors_count']})"
            )
            self._patch("finish run", dict(finished_at=self.clock(), status=status, **counters))
            self.flush(self.flush_timeout)

        return status
