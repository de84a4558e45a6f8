"""Worker pool consuming the bounded event queue."""

import threading
from typing import Callable, List

from alert_engine.domain.models import ListingEvent
from alert_engine.logging import get_logger
from alert_engine.logging.context import clear_log_context

from .queue import BoundedEventQueue

logger = get_logger(__name__, component="workers")

POLL_TIMEOUT_SECONDS = 0.5


class WorkerPool:
    """Fixed set of threads taking events from the queue and handling them.

    The handler is expected to route its own failures (EngineCoordinator.handle
    does). Anything that still escapes is logged and the worker keeps going.
    """

    def __init__(
        self,
        queue: BoundedEventQueue,
        handler: Callable[[ListingEvent], object],
        workers: int = 4,
    ):
        if workers < 1:
            raise ValueError(f"Worker count must be at least 1, got: {workers}")
        self.queue = queue
        self.handler = handler
        self.size = workers
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("Worker pool already started")
        for index in range(self.size):
            thread = threading.Thread(
                target=self._run,
                name=f"alert-engine-worker-{index}",
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)
        logger.info(
            f"Started {self.size} workers",
            extra={"event": "workers.started", "workers": self.size},
        )

    def stop(self, timeout: float = 30.0) -> bool:
        """Close the queue, let workers drain it, then join them.

        Returns:
            True if every worker exited within the timeout
        """
        self.queue.close()
        for thread in self._threads:
            thread.join(timeout)
        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            logger.warning(
                f"{len(alive)} workers still running after {timeout}s",
                extra={"event": "workers.stop_timeout", "alive": ",".join(alive)},
            )
        else:
            logger.info("All workers stopped", extra={"event": "workers.stopped"})
        self._threads = [t for t in self._threads if t.is_alive()]
        return not alive

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def _run(self) -> None:
        clear_log_context()
        while True:
            event = self.queue.get(timeout=POLL_TIMEOUT_SECONDS)
            if event is None:
                if self.queue.is_drained():
                    return
                continue
            try:
                self.handler(event)
            except Exception as e:
                logger.error(
                    f"Worker handler failed for listing {event.listing_id}: {e}",
                    exc_info=True,
                    extra={
                        "event": "workers.handler.failed",
                        "event_id": event.event_id,
                        "listing_id": event.listing_id,
                    },
                )
            finally:
                self.queue.task_done()
