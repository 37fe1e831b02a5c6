"""Automation worker: runs a cycle over the enabled channels on an interval."""

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol

from app import models  # noqa: F401  registers ORM tables on Base
from app.config import Settings, settings
from app.database import Base, SessionLocal, engine
from app.errors import AutomationError
from app.pipeline import GenerationPipeline, build_pipeline
from app.schemas.generation import ChannelTemplate, Idea, PromptResult
from app.schemas.run import EventLevel, EventStep
from app.services.channels import ChannelRegistry, load_channel_registry
from app.services.ledger import RunLedger
from app.services.run_store import RunStore, SqlRunStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class JobDispatcher(Protocol):
    """Consumes a generated prompt and creates a video job for it."""

    def create_job(self, channel: ChannelTemplate, idea: Idea, prompt: PromptResult) -> str: ...


class LoggingJobDispatcher:
    """Dry-run dispatcher: logs the job instead of handing it to a video backend."""

    def create_job(self, channel: ChannelTemplate, idea: Idea, prompt: PromptResult) -> str:
        job_id = str(uuid.uuid4())
        logger.info(f"[dry-run] Job {job_id} for channel {channel.id}: {prompt.video_title!r}")
        return job_id


class AutomationWorker:
    """Runs automation cycles and records them in the run ledger.

    A failure in one channel is recorded as an error event and never stops
    the remaining channels.
    """

    def __init__(
        self,
        pipeline: GenerationPipeline,
        store: RunStore,
        registry: ChannelRegistry,
        dispatcher: JobDispatcher,
        config: Settings = settings,
    ):
        """Initialize worker."""
        self.pipeline = pipeline
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher
        self.config = config

    def run_cycle(self, scheduler_invocation_at: Optional[datetime] = None, **ledger_options) -> RunLedger:
        """
        Process every enabled channel once.

        Args:
            scheduler_invocation_at: The trigger's own timestamp, for drift diagnosis
            ledger_options: Extra RunLedger options (write attempts, clock)

        Returns:
            The finished ledger for the run
        """
        channels = self.registry.list_enabled_channels()
        ledger = RunLedger.open(
            self.store,
            timezone=self.config.AUTOMATION_TIMEZONE,
            channels_planned=len(channels),
            scheduler_invocation_at=scheduler_invocation_at,
            **ledger_options,
        )
        logger.info(f"Automation run {ledger.run_id} started with {len(channels)} channels")

        ledger.record_event(
            EventLevel.INFO,
            EventStep.SELECT_CHANNELS,
            f"Selected {len(channels)} channels for processing",
            details={"channel_ids": [c.id for c in channels]},
        )

        for channel in channels:
            self.process_channel(ledger, channel)

        status = ledger.finish()
        logger.info(f"Automation run {ledger.run_id} completed: {status.value}")
        return ledger

    def process_channel(self, ledger: RunLedger, channel: ChannelTemplate) -> Optional[str]:
        """Generate and dispatch one job for a channel. Returns the job id on success."""
        step = EventStep.CHANNEL_CHECK
        context = {"channel_id": channel.id, "channel_name": channel.name}

        try:
            ledger.record_event(EventLevel.INFO, step, "Processing channel", **context)

            step = EventStep.GENERATE_IDEA
            ideas = self.pipeline.generate_ideas(channel, count=self.config.IDEAS_PER_CHANNEL)
            idea = ideas[0]
            ledger.record_event(
                EventLevel.INFO,
                step,
                f"Generated {len(ideas)} ideas",
                details={"selected_idea": idea.title},
                **context,
            )

            step = EventStep.GENERATE_PROMPT
            prompt = self.pipeline.generate_veo_prompt(channel, idea)
            ledger.record_event(
                EventLevel.INFO,
                step,
                "Generated video prompt",
                details={"video_title": prompt.video_title},
                **context,
            )

            step = EventStep.CREATE_JOB
            job_id = self.dispatcher.create_job(channel, idea, prompt)
            ledger.increment_jobs_created()
            ledger.record_event(EventLevel.INFO, step, f"Created job {job_id}", details={"job_id": job_id}, **context)

            ledger.increment_channels_processed()
            return job_id

        except AutomationError as e:
            error_type = type(e).__name__
            message = f"{error_type}: {e}"
            logger.warning(f"Channel {channel.id} failed at {step.value}: {message}")
        except Exception as e:
            error_type = type(e).__name__
            message = f"Unexpected error: {e}"
            logger.error(f"Channel {channel.id} failed at {step.value}: {e}", exc_info=True)

        ledger.record_event(EventLevel.ERROR, step, message, details={"error_type": error_type}, **context)
        ledger.update_run(last_error_message=message)
        return None

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        stop_event = stop_event or threading.Event()
        interval = self.config.AUTOMATION_INTERVAL_SECONDS
        logger.info(f"Worker started, running a cycle every {interval}s")

        while not stop_event.is_set():
            if self.config.AUTOMATION_ENABLED:
                try:
                    self.run_cycle(scheduler_invocation_at=datetime.now(timezone.utc))
                except Exception as e:
                    logger.error(f"Worker error: {e}", exc_info=True)
            else:
                logger.info("Automation disabled, skipping cycle")

            stop_event.wait(interval)

        logger.info("Worker stop signal received")


def build_worker(config: Settings = settings) -> AutomationWorker:
    """Wire the worker from configuration.

    Raises:
        ConfigError: If the generation service or channel file is misconfigured
    """
    return AutomationWorker(
        build_pipeline(config),
        SqlRunStore(SessionLocal),
        load_channel_registry(config.CHANNELS_FILE),
        LoggingJobDispatcher(),
        config,
    )


def worker_loop(stop_event: Optional[threading.Event] = None) -> None:
    """Run worker loop (for use as background thread).

    Args:
        stop_event: Optional threading.Event to signal worker to stop
    """
    Base.metadata.create_all(bind=engine)
    build_worker().run(stop_event=stop_event)


def main():
    """Entry point for standalone worker."""
    try:
        worker_loop()
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
