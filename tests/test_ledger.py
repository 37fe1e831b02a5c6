"""Tests for the run ledger and run store."""

import threading
import time
import uuid
from datetime import datetime, timedelta, timezone

from app.errors import StoreError
from app.models.run import AutomationRun
from app.schemas.run import EventLevel, EventStep, RunStatus
from app.services.ledger import RunLedger


def open_ledger(store, **kwargs):
    return RunLedger.open(store, timezone="Asia/Almaty", channels_planned=3, write_attempts=3, retry_wait_seconds=0, **kwargs)


def test_open_creates_running_run(store):
    """Test that opening persists a running run with zero counters."""
    invoked = datetime(2026, 1, 1, 10, 0, tzinfo=timezone.utc)
    ledger = open_ledger(store, scheduler_invocation_at=invoked)

    run = store.get_run(ledger.run_id)
    assert ledger.persisted
    assert run.status == RunStatus.RUNNING
    assert run.finished_at is None
    assert run.channels_planned == 3
    assert run.timezone == "Asia/Almaty"
    assert (run.channels_processed, run.jobs_created, run.errors_count) == (0, 0, 0)
    assert run.scheduler_invocation_at.replace(tzinfo=None) == invoked.replace(tzinfo=None)


def test_record_event_appends_and_counts_errors(store):
    """Test events are appended in order and errors are counted."""
    ledger = open_ledger(store)
    ledger.record_event(EventLevel.INFO, EventStep.SELECT_CHANNELS, "Selected 3 channels")
    ledger.record_event(
        EventLevel.ERROR,
        EventStep.GENERATE_IDEA,
        "ParseError: array not found",
        channel_id="ch-1",
        channel_name="Mountain Shorts",
        details={"error_type": "ParseError"},
    )

    events = store.list_events(ledger.run_id)
    assert [e.step for e in events] == [EventStep.SELECT_CHANNELS, EventStep.GENERATE_IDEA]
    assert events[1].level == EventLevel.ERROR
    assert events[1].channel_name == "Mountain Shorts"
    assert events[1].details == {"error_type": "ParseError"}
    assert ledger.errors_count == 1


def test_counters_written_with_each_event(store):
    """Test the stored run counters follow the event log."""
    ledger = open_ledger(store)
    ledger.increment_jobs_created()
    ledger.increment_channels_processed()
    ledger.record_event(EventLevel.ERROR, EventStep.CREATE_JOB, "failed")

    run = store.get_run(ledger.run_id)
    assert (run.errors_count, run.jobs_created, run.channels_processed) == (1, 1, 1)
    assert run.status == RunStatus.RUNNING


def test_increments_are_in_memory_only(store):
    """Test increments do not write until an event or finish."""
    ledger = open_ledger(store)
    ledger.increment_jobs_created()
    ledger.increment_channels_processed()

    assert store.get_run(ledger.run_id).jobs_created == 0
    assert ledger.counters() == {"errors_count": 0, "jobs_created": 1, "channels_processed": 1}


def test_finish_success(store):
    """Test a clean run finishes as success."""
    ledger = open_ledger(store)
    ledger.increment_channels_processed()
    ledger.increment_jobs_created()

    assert ledger.finish() == RunStatus.SUCCESS

    run = store.get_run(ledger.run_id)
    assert run.status == RunStatus.SUCCESS
    assert run.finished_at is not None
    assert (run.jobs_created, run.channels_processed) == (1, 1)


def test_finish_error_and_partial(store):
    """Test the verdict follows the counters."""
    failed = open_ledger(store)
    failed.record_event(EventLevel.ERROR, EventStep.CHANNEL_CHECK, "boom")
    assert failed.finish() == RunStatus.ERROR

    partial = open_ledger(store)
    partial.record_event(EventLevel.ERROR, EventStep.CHANNEL_CHECK, "boom")
    partial.increment_jobs_created()
    assert partial.finish() == RunStatus.PARTIAL
    assert store.get_run(partial.run_id).status == RunStatus.PARTIAL


def test_finish_is_idempotent(store):
    """Test repeated finish keeps the first verdict."""
    ledger = open_ledger(store)
    assert ledger.finish() == RunStatus.SUCCESS
    ledger.record_event(EventLevel.ERROR, EventStep.OTHER, "late failure")
    assert ledger.finish() == RunStatus.SUCCESS


def test_event_after_finish_does_not_reopen_run(store):
    """Test late events are stored without touching run status or counters."""
    ledger = open_ledger(store)
    ledger.increment_channels_processed()
    ledger.finish()
    finished = store.get_run(ledger.run_id)

    ledger.record_event(EventLevel.ERROR, EventStep.UPDATE_CHANNEL_NEXT_RUN, "late error")

    run = store.get_run(ledger.run_id)
    assert run.status == RunStatus.SUCCESS
    assert run.finished_at == finished.finished_at
    assert run.errors_count == 0
    assert store.list_events(ledger.run_id)[-1].message == "late error"


def test_update_run_patch(store):
    """Test merge-patching run fields."""
    ledger = open_ledger(store)
    ledger.update_run(last_error_message="ServiceError: timeout")
    assert store.get_run(ledger.run_id).last_error_message == "ServiceError: timeout"


def test_update_run_unknown_field_never_raises(store):
    """Test that an invalid patch is dead-lettered, not raised."""
    ledger = open_ledger(store)
    ledger.update_run(not_a_column=1)
    assert ledger.dead_letters[-1].operation == "update run"


def test_store_failures_never_raise(failing_store):
    """Test append and update failures are retried, swallowed and dead-lettered."""
    ledger = open_ledger(failing_store)

    ledger.record_event(EventLevel.ERROR, EventStep.GENERATE_PROMPT, "boom")
    ledger.update_run(last_error_message="boom")
    ledger.increment_jobs_created()
    status = ledger.finish()

    assert status == RunStatus.PARTIAL
    assert failing_store.calls["append_event"] == 3
    assert failing_store.calls["update_run"] == 6
    assert [d.operation for d in ledger.dead_letters] == ["append event", "update run", "finish run"]


def test_open_with_failing_store_is_detached(failing_store):
    """Test a run that cannot be created still yields a usable ledger."""
    failing_store.fail_create = True
    ledger = open_ledger(failing_store)

    assert ledger.persisted is False
    assert isinstance(ledger.run_id, uuid.UUID)

    ledger.record_event(EventLevel.ERROR, EventStep.OTHER, "boom")
    assert ledger.finish() == RunStatus.ERROR
    assert failing_store.calls["append_event"] == 0


def test_invalid_event_values_never_raise(store):
    """Test an unknown step is logged and dropped."""
    ledger = open_ledger(store)
    ledger.record_event("info", "not-a-step", "bad")
    assert store.list_events(ledger.run_id) == []


def test_concurrent_increments(store):
    """Test counters stay exact under concurrent channel workers."""
    ledger = open_ledger(store)

    def work():
        for _ in range(200):
            ledger.increment_jobs_created()
            ledger.increment_channels_processed()

    threads = [threading.Thread(target=work) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ledger.jobs_created == 1600
    assert ledger.channels_processed == 1600


def test_list_runs_most_recent_first(store, test_db):
    """Test run listing order and limit."""
    base = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ids = [open_ledger(store, clock=lambda n=n: base + timedelta(hours=n)).run_id for n in range(3)]

    runs = store.list_runs(2)
    assert [r.run_id for r in runs] == [ids[2], ids[1]]
    assert test_db.query(AutomationRun).count() == 3


def test_last_successful_run_at(store):
    """Test only successful finished runs count."""
    assert store.last_successful_run_at() is None

    ok = open_ledger(store)
    ok.finish()
    failed = open_ledger(store)
    failed.record_event(EventLevel.ERROR, EventStep.OTHER, "boom")
    failed.finish()

    assert store.last_successful_run_at() == store.get_run(ok.run_id).finished_at


class GatedStore:
    """Run store whose first event append waits until the gate opens."""

    def __init__(self, inner):
        self.inner = inner
        self.entered = threading.Event()
        self.gate = threading.Event()
        self._first = True

    def append_event(self, event, counters=None):
        if self._first:
            self._first = False
            self.entered.set()
            self.gate.wait(5)
        self.inner.append_event(event, counters)

    def __getattr__(self, name):
        return getattr(self.inner, name)


def test_concurrent_events_never_lower_stored_counters(store):
    """Test a slow event write cannot overwrite newer counters."""
    gated = GatedStore(store)
    ledger = open_ledger(gated)

    first = threading.Thread(target=ledger.record_event, args=(EventLevel.ERROR, EventStep.GENERATE_IDEA, "A"))
    first.start()
    assert gated.entered.wait(5)

    second = threading.Thread(target=ledger.record_event, args=(EventLevel.ERROR, EventStep.GENERATE_PROMPT, "B"))
    second.start()
    time.sleep(0.05)
    gated.gate.set()
    first.join(5)
    second.join(5)

    assert ledger.errors_count == 2
    assert store.get_run(ledger.run_id).errors_count == 2
    assert [e.message for e in store.list_events(ledger.run_id)] == ["A", "B"]


def test_slow_event_cannot_roll_back_finish(store):
    """Test an event written before finish never undoes the final counters."""
    gated = GatedStore(store)
    ledger = open_ledger(gated)

    event = threading.Thread(target=ledger.record_event, args=(EventLevel.ERROR, EventStep.CREATE_JOB, "slow"))
    event.start()
    assert gated.entered.wait(5)

    ledger.increment_jobs_created()
    finisher = threading.Thread(target=ledger.finish)
    finisher.start()
    time.sleep(0.05)
    gated.gate.set()
    event.join(5)
    finisher.join(5)

    run = store.get_run(ledger.run_id)
    assert run.status == RunStatus.PARTIAL
    assert (run.errors_count, run.jobs_created) == (1, 1)
    assert run.finished_at is not None


def test_store_outage_does_not_block_caller(failing_store):
    """Test backoff runs off the caller's thread and finish bounds the wait."""
    ledger = RunLedger.open(
        failing_store,
        timezone="Asia/Almaty",
        channels_planned=1,
        write_attempts=3,
        retry_wait_seconds=0.5,
        flush_timeout=0.1,
    )

    start = time.monotonic()
    ledger.record_event(EventLevel.ERROR, EventStep.GENERATE_IDEA, "boom")
    assert time.monotonic() - start < 0.4
    assert failing_store.calls["append_event"] >= 1

    start = time.monotonic()
    assert ledger.finish() == RunStatus.ERROR
    assert time.monotonic() - start < 1.0

    assert failing_store.calls["append_event"] == 3
    assert [d.operation for d in ledger.dead_letters] == ["append event", "finish run"]
    assert ledger.backlog == 0


def test_queued_retry_succeeds_in_order(store):
    """Test a write that fails once is stored by the background retry."""

    class FlakyStore:
        def __init__(self, inner):
            self.inner = inner
            self.failures = 1

        def append_event(self, event, counters=None):
            if self.failures:
                self.failures -= 1
                raise StoreError("connection reset")
            self.inner.append_event(event, counters)

        def __getattr__(self, name):
            return getattr(self.inner, name)

    ledger = open_ledger(FlakyStore(store))
    ledger.record_event(EventLevel.INFO, EventStep.SELECT_CHANNELS, "first")
    ledger.record_event(EventLevel.INFO, EventStep.CHANNEL_CHECK, "second")
    ledger.finish()

    assert ledger.dead_letters == []
    assert [e.message for e in store.list_events(ledger.run_id)] == ["first", "second"]


def test_update_run_rejects_lifecycle_fields(store):
    """Test that status, finished_at and counters cannot be patched."""
    ledger = open_ledger(store)
    ledger.increment_jobs_created()
    ledger.record_event(EventLevel.INFO, EventStep.CREATE_JOB, "Created job")

    ledger.update_run(
        status=RunStatus.ERROR,
        jobs_created=0,
        finished_at=datetime.now(timezone.utc),
        last_error_message="x",
    )

    run = store.get_run(ledger.run_id)
    assert run.status == RunStatus.RUNNING
    assert run.finished_at is None
    assert run.jobs_created == 1
    assert run.last_error_message == "x"
    assert ledger.dead_letters[-1].operation == "update run"
    assert set(ledger.dead_letters[-1].payload) == {"finished_at", "jobs_created", "status"}
