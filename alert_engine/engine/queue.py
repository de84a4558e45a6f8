"""Bounded listing event queue with an explicit overflow policy.

Two policies are supported when the queue is full:

- block: the producer waits up to enqueue_timeout for space, then the
  offered event is dropped.
- drop_oldest: the oldest queued event is evicted to make room.

Every drop is counted, logged at WARNING and passed to the on_drop
callback (the engine dead-letters it so it can be re-driven). close() stops
intake while consumers keep draining what is already queued.
"""

import threading
import time
from collections import deque
from typing import Callable, Deque, Optional

from alert_engine.config.models import OverflowPolicy
from alert_engine.domain.models import ListingEvent
from alert_engine.logging import get_logger

from .exceptions import QueueClosedError
from .models import EngineStats

logger = get_logger(__name__, component="queue")


class BoundedEventQueue:
    """Thread-safe FIFO of listing events with bounded capacity."""

    def __init__(
        self,
        capacity: int,
        overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK,
        enqueue_timeout: float = 5.0,
        stats: Optional[EngineStats] = None,
        on_drop: Optional[Callable[[ListingEvent, str], None]] = None,
    ):
        if capacity < 1:
            raise ValueError(f"Queue capacity must be at least 1, got: {capacity}")
        self.capacity = capacity
        self.overflow_policy = OverflowPolicy(overflow_policy)
        self.enqueue_timeout = enqueue_timeout
        self.stats = stats or EngineStats()
        self.on_drop = on_drop

        self._items: Deque[ListingEvent] = deque()
        self._closed = False
        self._unfinished = 0
        self._dropped = 0
        self._mutex = threading.Lock()
        self._not_empty = threading.Condition(self._mutex)
        self._not_full = threading.Condition(self._mutex)
        self._all_done = threading.Condition(self._mutex)

    def put(self, event: ListingEvent) -> bool:
        """Offer an event.

        Returns:
            True if the event was queued, False if it was dropped (block
            policy, timed out waiting for space)

        Raises:
            QueueClosedError: If close() has been called
        """
        evicted = None
        with self._mutex:
            if self._closed:
                raise QueueClosedError("Event queue is closed")

            if len(self._items) >= self.capacity:
                if self.overflow_policy == OverflowPolicy.DROP_OLDEST:
                    evicted = self._items.popleft()
                    self._unfinished -= 1
                    self._dropped += 1
                else:
                    deadline = time.monotonic() + self.enqueue_timeout
                    while len(self._items) >= self.capacity and not self._closed:
                        remaining = deadline - time.monotonic()
                        if remaining <= 0:
                            break
                        self._not_full.wait(remaining)
                    if self._closed:
                        raise QueueClosedError("Event queue closed while waiting for space")
                    if len(self._items) >= self.capacity:
                        self._dropped += 1
                        evicted = event

            if evicted is not event:
                self._items.append(event)
                self._unfinished += 1
                self._not_empty.notify()

        if evicted is not None:
            reason = "enqueue_timeout" if evicted is event else "drop_oldest"
            self._report_drop(evicted, reason)
        return evicted is not event

    def get(self, timeout: Optional[float] = None) -> Optional[ListingEvent]:
        """Take the next event, waiting up to timeout seconds.

        Returns:
            The event, or None if nothing arrived in time or the queue is
            closed and empty
        """
        with self._not_empty:
            if timeout is None:
                while not self._items and not self._closed:
                    self._not_empty.wait()
            elif not self._items and not self._closed:
                self._not_empty.wait(timeout)
            if not self._items:
                return None
            event = self._items.popleft()
            self._not_full.notify()
            return event

    def task_done(self) -> None:
        """Mark a previously taken event as fully processed."""
        with self._mutex:
            if self._unfinished <= 0:
                raise ValueError("task_done() called more times than events were queued")
            self._unfinished -= 1
            if self._unfinished == 0:
                self._all_done.notify_all()

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event has been processed.

        Returns:
            True if idle, False if the timeout expired first
        """
        with self._all_done:
            return self._all_done.wait_for(lambda: self._unfinished == 0, timeout)

    def close(self) -> None:
        """Stop intake. Already queued events can still be taken."""
        with self._mutex:
            if self._closed:
                return
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()
            remaining = len(self._items)
        logger.info(
            f"Event queue closed with {remaining} events left to drain",
            extra={"event": "queue.closed", "remaining": remaining},
        )

    @property
    def closed(self) -> bool:
        with self._mutex:
            return self._closed

    @property
    def dropped_count(self) -> int:
        with self._mutex:
            return self._dropped

    def is_drained(self) -> bool:
        """True once the queue is closed and nothing is left to take."""
        with self._mutex:
            return self._closed and not self._items

    def __len__(self) -> int:
        with self._mutex:
            return len(self._items)

    def _report_drop(self, event: ListingEvent, reason: str) -> None:
        self.stats.increment("dropped")
        logger.warning(
            f"Dropped listing event for listing {event.listing_id} ({reason})",
            extra={
                "event": "queue.event.dropped",
                "event_id": event.event_id,
                "listing_id": event.listing_id,
                "reason": reason,
                "capacity": self.capacity,
                "dropped_total": self.dropped_count,
            },
        )
        if self.on_drop is not None:
            self.on_drop(event, reason)
