"""Tests for the bounded event queue."""

import threading
import time
from unittest.mock import Mock

import pytest

from alert_engine.config.models import OverflowPolicy
from alert_engine.engine import BoundedEventQueue, EngineStats, QueueClosedError

from tests.helpers import make_event, make_listing


def events(count):
    return [make_event(make_listing(f"ad-{index}")) for index in range(count)]


class TestBoundedEventQueue:
    """Tests for BoundedEventQueue."""

    def test_fifo_order(self):
        queue = BoundedEventQueue(capacity=5)
        batch = events(3)
        for event in batch:
            assert queue.put(event) is True

        taken = [queue.get(timeout=0) for _ in range(3)]

        assert taken == batch
        assert queue.get(timeout=0) is None

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BoundedEventQueue(capacity=0)

    def test_drop_oldest_evicts_and_reports(self):
        on_drop = Mock()
        stats = EngineStats()
        queue = BoundedEventQueue(
            capacity=2,
            overflow_policy=OverflowPolicy.DROP_OLDEST,
            stats=stats,
            on_drop=on_drop,
        )
        first, second, third = events(3)

        queue.put(first)
        queue.put(second)
        assert queue.put(third) is True

        assert [queue.get(timeout=0), queue.get(timeout=0)] == [second, third]
        on_drop.assert_called_once_with(first, "drop_oldest")
        assert queue.dropped_count == 1
        assert stats.dropped == 1

    def test_block_policy_times_out_and_drops_offered_event(self):
        on_drop = Mock()
        queue = BoundedEventQueue(capacity=1, enqueue_timeout=0.05, on_drop=on_drop)
        first, second = events(2)
        queue.put(first)

        started = time.monotonic()
        assert queue.put(second) is False

        assert time.monotonic() - started >= 0.04
        on_drop.assert_called_once_with(second, "enqueue_timeout")
        assert len(queue) == 1

    def test_block_policy_waits_for_space(self):
        queue = BoundedEventQueue(capacity=1, enqueue_timeout=5)
        first, second = events(2)
        queue.put(first)

        def consume():
            time.sleep(0.05)
            queue.get(timeout=1)

        consumer = threading.Thread(target=consume)
        consumer.start()
        assert queue.put(second) is True
        consumer.join()

        assert queue.get(timeout=0) == second
        assert queue.dropped_count == 0

    def test_put_after_close_raises(self):
        queue = BoundedEventQueue(capacity=1)
        queue.close()

        with pytest.raises(QueueClosedError):
            queue.put(events(1)[0])

    def test_close_keeps_queued_events_for_draining(self):
        queue = BoundedEventQueue(capacity=5)
        batch = events(2)
        for event in batch:
            queue.put(event)

        queue.close()

        assert queue.closed is True
        assert queue.is_drained() is False
        assert queue.get(timeout=0) == batch[0]
        assert queue.get(timeout=0) == batch[1]
        assert queue.is_drained() is True
        assert queue.get() is None

    def test_wait_until_idle(self):
        queue = BoundedEventQueue(capacity=5)
        queue.put(events(1)[0])

        assert queue.wait_until_idle(timeout=0.01) is False
        queue.get(timeout=0)
        queue.task_done()
        assert queue.wait_until_idle(timeout=0.01) is True

    def test_task_done_without_work_raises(self):
        with pytest.raises(ValueError):
            BoundedEventQueue(capacity=1).task_done()
