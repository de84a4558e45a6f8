"""Delivery retry queue with exponential backoff.

Retryable channel failures are re-attempted as delayed one-shot scheduler
jobs so no worker thread ever sleeps on a slow channel. When retries run
out, or a retry fails permanently, the failure is recorded for the
settings layer. The notification itself is never removed.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from alert_engine.domain.models import DeliveryOutcome, Notification
from alert_engine.logging import get_logger
from alert_engine.logging.context import log_context

from .channels import DeliveryChannel
from .models import DeliveryReport

logger = get_logger(__name__, component="delivery")

# (notification, channel name, reason, attempts, permanent)
FailureRecorder = Callable[[Notification, str, str, int, bool], None]


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters; delay(n) = initial * multiplier**(n - 1), capped."""

    max_retries: int = 3
    initial_delay: float = 5.0
    backoff_multiplier: float = 2.0
    max_delay: float = 300.0

    def delay_for(self, retry_number: int) -> float:
        """Delay before the retry_number-th retry (1-based)."""
        delay = self.initial_delay * (self.backoff_multiplier ** (retry_number - 1))
        return min(delay, self.max_delay)


class DeliveryRetryQueue:
    """Schedules delayed delivery retries and records exhausted ones."""

    def __init__(self, scheduler, policy: RetryPolicy, record_failure: FailureRecorder):
        """
        Args:
            scheduler: Object with schedule_once(func, delay_seconds, job_id, args, label)
                and cancel(job_id), normally SchedulerService
            policy: Retry limits and backoff
            record_failure: Callback persisting a delivery failure
        """
        self.scheduler = scheduler
        self.policy = policy
        self.record_failure = record_failure
        self._pending: Dict[str, Tuple[DeliveryChannel, Notification, int]] = {}
        self._lock = threading.Lock()

    def submit(self, channel: DeliveryChannel, notification: Notification, failed_attempt: int, error: str) -> bool:
        """Schedule the next attempt after a retryable failure.

        Args:
            channel: Channel that failed
            notification: Notification to re-deliver
            failed_attempt: Number of the attempt that just failed (1-based)
            error: Failure description

        Returns:
            True if a retry was scheduled, False if retries are exhausted
            (the failure is recorded in that case)
        """
        retry_number = failed_attempt
        if retry_number > self.policy.max_retries:
            logger.error(
                f"Delivery via {channel.name} exhausted after {failed_attempt} attempts: {error}",
                extra={
                    "event": "delivery.retry.exhausted",
                    "notification_id": notification.id,
                    "channel": channel.name,
                    "attempts": failed_attempt,
                },
            )
            self.record_failure(notification, channel.name, error, failed_attempt, False)
            return False

        delay = self.policy.delay_for(retry_number)
        job_id = f"delivery-{notification.id}-{channel.name}-{failed_attempt + 1}"
        with self._lock:
            self._pending[job_id] = (channel, notification, failed_attempt + 1)
        self.scheduler.schedule_once(
            self._run,
            delay,
            job_id=job_id,
            args=(job_id,),
            label="delivery",
        )

        logger.warning(
            f"Delivery via {channel.name} failed (attempt {failed_attempt}), retrying in {delay:.1f}s: {error}",
            extra={
                "event": "delivery.retry.scheduled",
                "notification_id": notification.id,
                "channel": channel.name,
                "attempt": failed_attempt,
                "delay_seconds": delay,
            },
        )
        return True

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def attempt(self, channel: DeliveryChannel, notification: Notification, attempt: int) -> DeliveryReport:
        """Run one delivery attempt and route its outcome.

        A retryable failure is resubmitted, a permanent one is recorded.
        """
        with log_context(notification_id=notification.id):
            try:
                result = channel.deliver(notification)
            except Exception as e:
                # Unexpected channel errors are retried like transient ones
                logger.error(
                    f"Channel {channel.name} raised unexpectedly: {e}",
                    exc_info=True,
                    extra={"event": "delivery.channel.crashed", "channel": channel.name},
                )
                result_outcome, result_error = DeliveryOutcome.RETRYABLE_FAILURE, str(e)
            else:
                result_outcome, result_error = result.outcome, result.error

            report = DeliveryReport(
                notification_id=notification.id,
                channel=channel.name,
                outcome=result_outcome,
                attempt=attempt,
                error=result_error,
            )

            if result_outcome == DeliveryOutcome.SUCCESS:
                logger.info(
                    f"Notification delivered via {channel.name}",
                    extra={
                        "event": "delivery.send.success",
                        "channel": channel.name,
                        "attempt": attempt,
                    },
                )
            elif result_outcome == DeliveryOutcome.RETRYABLE_FAILURE:
                report.retry_scheduled = self.submit(channel, notification, attempt, result_error)
            else:
                logger.error(
                    f"Delivery via {channel.name} failed permanently: {result_error}",
                    extra={
                        "event": "delivery.send.permanent_failure",
                        "channel": channel.name,
                        "attempt": attempt,
                    },
                )
                self.record_failure(notification, channel.name, result_error, attempt, True)
            return report

    def _run(self, job_id: str) -> Optional[DeliveryReport]:
        with self._lock:
            entry = self._pending.pop(job_id, None)
        if entry is None:
            return None
        channel, notification, attempt = entry
        return self.attempt(channel, notification, attempt)

    def shutdown(self) -> int:
        """Cancel scheduled retries, recording each as an undelivered failure.

        Returns:
            Number of retries abandoned
        """
        with self._lock:
            pending = list(self._pending.items())
            self._pending.clear()

        for job_id, (channel, notification, attempt) in pending:
            self.scheduler.cancel(job_id)
            self.record_failure(
                notification,
                channel.name,
                "Engine stopped before the delivery retry ran",
                attempt - 1,
                False,
            )
        if pending:
            logger.warning(
                f"Abandoned {len(pending)} pending delivery retries on shutdown",
                extra={"event": "delivery.retry.abandoned", "count": len(pending)},
            )
        return len(pending)
