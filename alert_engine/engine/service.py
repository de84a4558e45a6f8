"""Alert engine service: wires queue, workers, coordinator and schedulers.

    source.poll() -> BoundedEventQueue -> WorkerPool -> EngineCoordinator.handle()
                                                         |-> DispatchLedger
                                                         |-> Notifier -> channels
    SchedulerService: feed polling, periodic re-scan, delayed retries
"""

import threading
import time
from typing import List, Optional, Sequence

from alert_engine.config.environment import EnvironmentConfig
from alert_engine.config.models import AppConfig
from alert_engine.domain.models import ListingEvent
from alert_engine.ledger import DispatchLedger
from alert_engine.logging import get_logger
from alert_engine.matching import CriteriaMatcher
from alert_engine.notifications import (
    DeliveryChannel,
    DeliveryRetryQueue,
    EmailChannel,
    InAppChannel,
    Notifier,
    RetryPolicy,
    WebhookChannel,
)
from alert_engine.persistence import DeadLetterRepository, get_session
from alert_engine.scheduler import SchedulerService
from alert_engine.sources import BaseListingSource, HttpListingFeed, ListingSourceError

from .coordinator import EngineCoordinator
from .exceptions import EngineError, QueueClosedError
from .models import EngineStats, EventOutcome, RescanResult
from .queue import BoundedEventQueue
from .rescan import PeriodicRescan
from .retry import EventRetryHandler
from .workers import WorkerPool

logger = get_logger(__name__, component="engine")

POLL_JOB_ID = "listing-feed-poll"
RESCAN_JOB_ID = "periodic-rescan"


def build_channels(app_config: AppConfig, env_config: EnvironmentConfig) -> List[DeliveryChannel]:
    """In-app delivery always; email and webhook when enabled in config."""
    channels: List[DeliveryChannel] = [InAppChannel()]
    email = app_config.delivery.email
    if email.enabled:
        channels.append(EmailChannel(env_config, email.recipients, use_tls=email.use_tls))
    webhook = app_config.delivery.webhook
    if webhook.enabled:
        channels.append(
            WebhookChannel(
                webhook.url,
                timeout=webhook.timeout,
                user_agent=app_config.listing_feed.user_agent,
            )
        )
    return channels


def build_source(
    app_config: AppConfig, env_config: EnvironmentConfig
) -> Optional[BaseListingSource]:
    feed = app_config.listing_feed
    if not feed.enabled:
        return None
    return HttpListingFeed(feed, token=env_config.listing_feed_token)


class AlertEngineService:
    """Runs the listing alert engine in-process.

    start() launches the workers and the scheduler; stop() drains the queue,
    dead-letters pending event retries and records pending delivery retries
    as failures, so nothing in flight is silently lost.
    """

    def __init__(
        self,
        app_config: AppConfig,
        env_config: EnvironmentConfig,
        source: Optional[BaseListingSource] = None,
        channels: Optional[Sequence[DeliveryChannel]] = None,
        scheduler: Optional[SchedulerService] = None,
    ):
        """
        Args:
            app_config: Validated application configuration
            env_config: Environment configuration (SMTP, feed token)
            source: Listing event source (built from listing_feed config if None)
            channels: Delivery channels (built from delivery config if None)
            scheduler: Scheduler for polling, re-scans and retries
        """
        self.app_config = app_config
        self.env_config = env_config
        self.stats = EngineStats()
        self.shutdown_event = threading.Event()
        self.scheduler = scheduler or SchedulerService(shutdown_event=self.shutdown_event)
        self.source = source if source is not None else build_source(app_config, env_config)

        engine_config = app_config.engine
        self.queue = BoundedEventQueue(
            capacity=engine_config.queue_capacity,
            overflow_policy=engine_config.overflow_policy,
            enqueue_timeout=engine_config.enqueue_timeout_seconds,
            stats=self.stats,
        )
        self.retry_handler = EventRetryHandler(
            self.queue, self.scheduler, engine_config.storage_retry, self.stats
        )
        self.queue.on_drop = self.retry_handler.on_queue_drop

        delivery = app_config.delivery
        self.notifier = Notifier(
            channels=channels if channels is not None else build_channels(app_config, env_config)
        )
        self.delivery_retries = DeliveryRetryQueue(
            self.scheduler,
            RetryPolicy(
                max_retries=delivery.max_retries,
                initial_delay=delivery.retry_initial_delay,
                backoff_multiplier=delivery.retry_backoff_multiplier,
                max_delay=delivery.retry_max_delay,
            ),
            self.notifier.record_failure,
        )
        self.notifier.retry_queue = self.delivery_retries

        self.coordinator = EngineCoordinator(
            matcher=CriteriaMatcher(),
            ledger=DispatchLedger(),
            notifier=self.notifier,
            stats=self.stats,
            retry_handler=self.retry_handler,
        )
        self.workers = WorkerPool(self.queue, self.coordinator.handle, engine_config.workers)
        self.rescan = PeriodicRescan(
            self.coordinator,
            window_seconds=app_config.rescan.window_seconds,
            cancel_event=self.shutdown_event,
        )
        self._started = False
        self._stopped = False

    def start(self) -> None:
        """Start workers and register the polling and re-scan jobs."""
        if self._started:
            raise EngineError("Engine already started")

        self.workers.start()

        feed = self.app_config.listing_feed
        if self.source is not None and feed.enabled:
            self.scheduler.add_interval_job(
                POLL_JOB_ID,
                self.poll_source,
                feed.poll_interval_seconds,
                run_immediately=True,
                name="Listing feed poll",
            )
        rescan = self.app_config.rescan
        if rescan.enabled:
            self.scheduler.add_interval_job(
                RESCAN_JOB_ID,
                self.run_rescan_job,
                rescan.interval_seconds,
                name="Periodic re-scan",
            )

        self.scheduler.start()
        self._started = True
        logger.info(
            "Alert engine started",
            extra={
                "event": "engine.started",
                "workers": self.app_config.engine.workers,
                "queue_capacity": self.app_config.engine.queue_capacity,
                "overflow_policy": self.app_config.engine.overflow_policy,
                "polling": self.source is not None and feed.enabled,
                "rescan": rescan.enabled,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Graceful shutdown. Safe to call more than once.

        The re-scan is cancelled at its next listing boundary and running
        scheduler jobs finish while workers are still consuming. The queue is
        drained next, and only then are pending retries abandoned.
        """
        if self._stopped:
            return
        self._stopped = True
        start_time = time.monotonic()
        logger.info("Alert engine stopping", extra={"event": "engine.stopping"})

        self.shutdown_event.set()
        if self.scheduler.is_running():
            self.scheduler.shutdown(wait=True)
        drained = self.workers.stop(timeout)
        abandoned_events = self.retry_handler.shutdown()
        abandoned_deliveries = self.delivery_retries.shutdown()

        logger.info(
            "Alert engine stopped",
            extra={
                "event": "engine.stopped",
                "drained": drained,
                "requeues_dead_lettered": len(abandoned_events),
                "delivery_retries_abandoned": abandoned_deliveries,
                "duration_seconds": round(time.monotonic() - start_time, 2),
                **self.stats.snapshot(),
            },
        )

    def submit(self, event: ListingEvent) -> bool:
        """Offer an event to the queue.

        Returns:
            False if the queue dropped it (it was dead-lettered) or is closed
        """
        try:
            return self.queue.put(event)
        except QueueClosedError:
            logger.warning(
                f"Engine is stopping, dead-lettering event for listing {event.listing_id}",
                extra={"event": "engine.submit.rejected", "listing_id": event.listing_id},
            )
            self.retry_handler.dead_letter(event, "submitted after shutdown")
            return False

    def poll_source(self) -> int:
        """Poll the listing source once and enqueue the batch.

        The batch is acknowledged only when every event was accepted or
        dead-lettered, so an interrupted poll is served again.

        Returns:
            Number of events received
        """
        if self.source is None:
            return 0
        try:
            events = self.source.poll()
        except ListingSourceError as e:
            logger.error(
                f"Listing feed poll failed: {e}",
                extra={"event": "source.poll.failed", "error_type": type(e).__name__},
            )
            return 0

        for event in events:
            self.submit(event)
        self.source.acknowledge()

        if events:
            logger.info(
                f"Enqueued {len(events)} listing events",
                extra={"event": "source.poll.completed", "events": len(events)},
            )
        return len(events)

    def run_once(self, events: Optional[Sequence[ListingEvent]] = None) -> List[EventOutcome]:
        """Process events synchronously in the calling thread (no workers).

        Without explicit events the source is polled once. Used by the CLI's
        manual run and by tests.
        """
        if events is None:
            events = self.source.poll() if self.source is not None else []
            acknowledge = self.source is not None
        else:
            acknowledge = False

        outcomes = [self.coordinator.handle(event) for event in events]
        if acknowledge:
            self.source.acknowledge()
        return outcomes

    def rescan_now(self) -> RescanResult:
        """Run one re-scan pass in the calling thread."""
        return self.rescan.run()

    def run_rescan_job(self) -> None:
        # Scheduler job wrapper: a failing pass is logged and the next tick runs again
        try:
            self.rescan.run()
        except Exception as e:
            logger.error(
                f"Periodic re-scan failed: {e}",
                exc_info=True,
                extra={"event": "rescan.failed", "error_type": type(e).__name__},
            )

    def redrive_dead_letters(self, limit: Optional[int] = None) -> int:
        """Move pending dead letters back onto the queue."""
        return self.retry_handler.redrive(limit)

    def pending_dead_letters(self) -> int:
        with get_session() as session:
            return DeadLetterRepository(session).count_pending()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self.queue.wait_until_idle(timeout)

    def drain_queue(self) -> List[EventOutcome]:
        """Process whatever is queued in the calling thread, without workers."""
        outcomes = []
        while True:
            event = self.queue.get(timeout=0)
            if event is None:
                return outcomes
            try:
                outcomes.append(self.coordinator.handle(event))
            finally:
                self.queue.task_done()
