"""Unit tests for the scheduler service.

Tests the SchedulerService including:
- Interval job registration with max_instances=1 and coalescing
- Immediate first run
- One-shot delayed jobs and cancellation
- Start/shutdown lifecycle
- Trigger now functionality
"""

import threading
import time
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from alert_engine.scheduler import SchedulerService


@pytest.fixture
def scheduler():
    service = SchedulerService()
    yield service
    if service.is_running():
        service.shutdown(wait=False)


class TestSchedulerService:
    """Test suite for SchedulerService."""

    def test_job_defaults(self, scheduler):
        """Test that jobs never overlap and missed runs coalesce."""
        defaults = scheduler.scheduler._job_defaults

        assert defaults["max_instances"] == 1
        assert defaults["coalesce"] is True
        assert defaults["misfire_grace_time"] == 60

    def test_start_and_shutdown(self):
        """Test scheduler start and shutdown lifecycle."""
        shutdown_event = threading.Event()
        scheduler = SchedulerService(shutdown_event=shutdown_event)

        scheduler.start()
        assert scheduler.is_running()

        scheduler.shutdown(wait=False)
        assert not scheduler.is_running()
        assert shutdown_event.is_set()

    def test_interval_job_registered(self, scheduler):
        scheduler.add_interval_job("listing-feed-poll", Mock(), 30, name="Listing feed poll")

        job = scheduler.scheduler.get_job("listing-feed-poll")
        assert job is not None
        assert job.name == "Listing feed poll"
        assert job.trigger.interval.total_seconds() == 30

    def test_immediate_first_run(self, scheduler):
        """Test that run_immediately fires the job right after start."""
        ran = threading.Event()
        scheduler.add_interval_job("poll", ran.set, 3600, run_immediately=True)

        scheduler.start()

        assert ran.wait(timeout=5)

    def test_next_run_time_after_start(self, scheduler):
        scheduler.add_interval_job("rescan", Mock(), 3600)
        scheduler.start()

        next_run = scheduler.get_next_run_time("rescan")

        assert next_run is not None
        assert next_run > datetime.now(timezone.utc)
        assert scheduler.get_next_run_time("missing") is None

    def test_replacing_job_keeps_single_instance(self, scheduler):
        scheduler.start()
        scheduler.add_interval_job("poll", Mock(), 30)
        scheduler.add_interval_job("poll", Mock(), 60)

        assert len(scheduler.scheduler.get_jobs()) == 1

    def test_trigger_now(self, scheduler):
        """Test running an interval job synchronously."""
        job = Mock()
        scheduler.add_interval_job("rescan", job, 3600)

        scheduler.trigger_now("rescan")

        job.assert_called_once_with()

    def test_trigger_now_unknown_job(self, scheduler):
        with pytest.raises(KeyError):
            scheduler.trigger_now("missing")


class TestOneShotJobs:
    """Tests for delayed one-shot jobs used by the retry paths."""

    def test_schedule_once_runs_with_args(self, scheduler):
        received = []
        done = threading.Event()

        def job(*args):
            received.extend(args)
            done.set()

        scheduler.start()
        job_id = scheduler.schedule_once(job, 0.05, job_id="event-1-2", args=("event-1-2",), label="event")

        assert job_id == "event-1-2"
        assert done.wait(timeout=5)
        assert received == ["event-1-2"]
        assert scheduler.pending_one_shot_jobs() == []

    def test_generated_job_id_uses_label(self, scheduler):
        job_id = scheduler.schedule_once(Mock(), 60, label="delivery")

        assert job_id.startswith("delivery-")
        assert scheduler.pending_one_shot_jobs("delivery") == [job_id]
        assert scheduler.pending_one_shot_jobs("event") == []

    def test_cancel_pending_job(self, scheduler):
        job = Mock()
        scheduler.start()
        job_id = scheduler.schedule_once(job, 60)

        assert scheduler.cancel(job_id) is True
        assert scheduler.cancel(job_id) is False
        assert scheduler.pending_one_shot_jobs() == []
        time.sleep(0.05)
        job.assert_not_called()
