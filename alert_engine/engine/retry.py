"""Event retry path: requeue with backoff, dead-letter when exhausted.

A listing event whose processing hit a storage timeout is offered to the
queue again after a delay. Requeued events carry an incremented attempt
counter; after max_attempts the event is written to the dead-letter table
for manual re-drive. Nothing on this path is ever silently discarded.
"""

import threading
from typing import Dict, List, Optional

from alert_engine.config.models import StorageRetryConfig
from alert_engine.domain.models import DeadLetter, ListingEvent
from alert_engine.logging import get_logger
from alert_engine.persistence import DeadLetterRepository, PersistenceError, get_session
from alert_engine.utils.timestamps import utc_now

from .exceptions import QueueClosedError
from .models import EngineStats
from .queue import BoundedEventQueue

logger = get_logger(__name__, component="retry")


class EventRetryHandler:
    """Schedules delayed requeues of listing events and owns the dead letters."""

    def __init__(
        self,
        queue: BoundedEventQueue,
        scheduler,
        config: Optional[StorageRetryConfig] = None,
        stats: Optional[EngineStats] = None,
    ):
        """
        Args:
            queue: Queue the retried events go back to
            scheduler: SchedulerService (or anything with schedule_once/cancel)
            config: Attempt limit and backoff
            stats: Shared engine counters
        """
        self.queue = queue
        self.scheduler = scheduler
        self.config = config or StorageRetryConfig()
        self.stats = stats or EngineStats()
        self._pending: Dict[str, ListingEvent] = {}
        self._lock = threading.Lock()

    def delay_for(self, attempt: int) -> float:
        """Backoff before re-running an event whose attempt-th run failed."""
        delay = self.config.initial_delay * (self.config.backoff_multiplier ** (attempt - 1))
        return min(delay, self.config.max_delay)

    def schedule_retry(self, event: ListingEvent, error: str) -> bool:
        """Requeue the event later, or dead-letter it when attempts are used up.

        Returns:
            True if a retry was scheduled, False if the event was dead-lettered
        """
        if event.attempt >= self.config.max_attempts:
            self.dead_letter(event, f"retries exhausted after {event.attempt} attempts: {error}")
            return False

        delay = self.delay_for(event.attempt)
        retried = event.next_attempt()
        job_id = f"event-{event.event_id}-{retried.attempt}"
        with self._lock:
            self._pending[job_id] = retried
        self.scheduler.schedule_once(
            self._requeue, delay, job_id=job_id, args=(job_id,), label="event"
        )
        self.stats.increment("requeued")

        logger.warning(
            f"Listing event requeued in {delay:.1f}s (attempt {retried.attempt} of "
            f"{self.config.max_attempts}): {error}",
            extra={
                "event": "engine.event.requeued",
                "event_id": event.event_id,
                "listing_id": event.listing_id,
                "attempt": retried.attempt,
                "delay_seconds": delay,
            },
        )
        return True

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _requeue(self, job_id: str) -> None:
        with self._lock:
            event = self._pending.pop(job_id, None)
        if event is None:
            return
        try:
            self.queue.put(event)
        except QueueClosedError:
            self.dead_letter(event, "queue closed before the retry ran")

    def dead_letter(self, event: ListingEvent, reason: str) -> Optional[DeadLetter]:
        """Persist the event for manual re-drive.

        Returns:
            The stored dead letter, or None if even that write failed (logged)
        """
        letter = DeadLetter(
            event_id=event.event_id,
            listing_id=event.listing_id,
            change_kind=event.change_kind,
            snapshot=event.snapshot,
            reason=reason,
            attempts=event.attempt,
        )
        try:
            with get_session() as session:
                stored = DeadLetterRepository(session).add(letter)
        except PersistenceError as e:
            logger.critical(
                f"Could not dead-letter event for listing {event.listing_id}: {e}",
                exc_info=True,
                extra={
                    "event": "engine.dead_letter.write_failed",
                    "event_id": event.event_id,
                    "listing_id": event.listing_id,
                    "snapshot": event.snapshot.model_dump_json(),
                },
            )
            return None

        self.stats.increment("dead_lettered")
        logger.error(
            f"Listing event dead-lettered: {reason}",
            extra={
                "event": "engine.event.dead_lettered",
                "event_id": event.event_id,
                "listing_id": event.listing_id,
                "attempts": event.attempt,
                "reason": reason,
            },
        )
        return stored

    def on_queue_drop(self, event: ListingEvent, reason: str) -> None:
        """Queue overflow callback: dropped events are kept as dead letters."""
        self.dead_letter(event, f"dropped by queue ({reason})")

    def redrive(self, limit: Optional[int] = None) -> int:
        """Put pending dead letters back on the queue with a fresh attempt counter.

        Returns:
            Number of events re-driven
        """
        with get_session() as session:
            letters = DeadLetterRepository(session).list_pending(limit)

        redriven = 0
        for letter in letters:
            try:
                queued = self.queue.put(letter.to_event())
            except QueueClosedError:
                logger.warning(
                    "Queue closed during re-drive; remaining dead letters stay pending",
                    extra={"event": "engine.redrive.interrupted", "redriven": redriven},
                )
                break
            if not queued:
                logger.warning(
                    f"Re-driven event for listing {letter.listing_id} was dropped by the queue",
                    extra={"event": "engine.redrive.dropped", "dead_letter_id": letter.id},
                )
            with get_session() as session:
                DeadLetterRepository(session).mark_redriven(letter.id, utc_now())
            redriven += 1

        logger.info(
            f"Re-drove {redriven} dead-lettered events",
            extra={"event": "engine.redrive.completed", "redriven": redriven},
        )
        return redriven

    def shutdown(self) -> List[str]:
        """Cancel pending requeues and dead-letter their events.

        Returns:
            Event ids that were dead-lettered
        """
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()

        for job_id, event in pending:
            self.scheduler.cancel(job_id)
            self.dead_letter(event, "shutdown")
        if pending:
            logger.warning(
                f"Dead-lettered {len(pending)} pending event retries on shutdown",
                extra={"event": "engine.retry.abandoned", "count": len(pending)},
            )
        return [event.event_id for _, event in pending]
