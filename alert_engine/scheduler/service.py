"""Scheduler service for periodic jobs and delayed one-shot retries."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from alert_engine.domain.models import new_id
from alert_engine.logging import get_logger

logger = get_logger(__name__, component="scheduler")


class SchedulerService:
    """
    Wraps APScheduler for the engine's background work.

    Interval jobs (feed polling, periodic re-scan) never overlap and coalesce
    missed runs. One-shot jobs carry the delayed retries of the event and
    delivery retry paths.
    """

    def __init__(
        self,
        shutdown_event: Optional[threading.Event] = None,
        misfire_grace_seconds: int = 60,
    ):
        """
        Args:
            shutdown_event: Optional event to set on shutdown for coordination
            misfire_grace_seconds: How late an interval job may still start
        """
        self.shutdown_event = shutdown_event
        self._lock = threading.Lock()
        self._interval_jobs: Dict[str, Callable[[], Any]] = {}
        self._one_shot_jobs: Dict[str, str] = {}

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,
                "coalesce": True,
                "misfire_grace_time": misfire_grace_seconds,
            },
            timezone=timezone.utc,
        )

    def add_interval_job(
        self,
        job_id: str,
        func: Callable[[], Any],
        interval_seconds: int,
        run_immediately: bool = False,
        name: Optional[str] = None,
    ) -> None:
        """
        Register a recurring job.

        Args:
            job_id: Stable identifier (replaces an existing job with the same id)
            func: Callable run on every tick
            interval_seconds: Seconds between runs
            run_immediately: Also run once right after start()
            name: Human-readable job name
        """
        trigger = IntervalTrigger(seconds=interval_seconds, timezone=timezone.utc)
        kwargs = {}
        if run_immediately:
            kwargs["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            func=func,
            trigger=trigger,
            id=job_id,
            name=name or job_id,
            replace_existing=True,
            **kwargs,
        )
        self._interval_jobs[job_id] = func

        logger.info(
            f"Registered interval job '{job_id}' every {interval_seconds} seconds",
            extra={
                "event": "scheduler.job.registered",
                "job_id": job_id,
                "interval_seconds": interval_seconds,
                "run_immediately": run_immediately,
            },
        )

    def schedule_once(
        self,
        func: Callable[..., Any],
        delay_seconds: float,
        job_id: Optional[str] = None,
        args: Sequence[Any] = (),
        label: str = "retry",
    ) -> str:
        """
        Run func once after delay_seconds.

        One-shot jobs always run, however late, since each one carries work
        that must not be lost.

        Returns:
            The job id
        """
        job_id = job_id or f"{label}-{new_id()}"
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay_seconds))

        def run_and_forget(*call_args):
            with self._lock:
                self._one_shot_jobs.pop(job_id, None)
            func(*call_args)

        with self._lock:
            self._one_shot_jobs[job_id] = label
        self.scheduler.add_job(
            func=run_and_forget,
            trigger=DateTrigger(run_date=run_date, timezone=timezone.utc),
            args=list(args),
            id=job_id,
            name=f"{label} ({job_id})",
            replace_existing=True,
            misfire_grace_time=None,
        )

        logger.debug(
            f"Scheduled one-shot job '{job_id}' in {delay_seconds:.1f}s",
            extra={
                "event": "scheduler.job.scheduled",
                "job_id": job_id,
                "delay_seconds": delay_seconds,
            },
        )
        return job_id

    def cancel(self, job_id: str) -> bool:
        """Remove a pending job. Returns False if it already ran or never existed."""
        with self._lock:
            self._one_shot_jobs.pop(job_id, None)
        self._interval_jobs.pop(job_id, None)
        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.debug(f"Cancelled job '{job_id}'", extra={"event": "scheduler.job.cancelled"})
        return True

    def pending_one_shot_jobs(self, label: Optional[str] = None) -> List[str]:
        """Ids of one-shot jobs that have not started yet."""
        with self._lock:
            return [
                job_id
                for job_id, job_label in self._one_shot_jobs.items()
                if label is None or job_label == label
            ]

    def start(self) -> None:
        """Start the scheduler thread."""
        self.scheduler.start()
        logger.info(
            "Scheduler started",
            extra={
                "event": "scheduler.started",
                "interval_jobs": ",".join(sorted(self._interval_jobs)),
            },
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def trigger_now(self, job_id: str) -> None:
        """
        Run an interval job synchronously in the current thread.

        Raises:
            KeyError: If no interval job is registered under job_id
        """
        func = self._interval_jobs[job_id]
        logger.info(
            f"Triggering immediate run of '{job_id}'",
            extra={"event": "scheduler.trigger_now", "job_id": job_id},
        )
        func()

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        """Next scheduled run time of a job, or None if not scheduled."""
        job = self.scheduler.get_job(job_id)
        # Jobs added before start() have no next_run_time yet
        return getattr(job, "next_run_time", None) if job else None
