"""Tests for the notification inbox read API."""

from datetime import datetime, timedelta, timezone

import pytest

from alert_engine.domain.models import DeliveryFailure, Notification
from alert_engine.notifications import NotificationInbox, NotificationNotFoundError
from alert_engine.persistence import DeliveryFailureRepository, NotificationRepository, get_session


@pytest.fixture
def inbox(database):
    base = datetime(2026, 10, 1, tzinfo=timezone.utc)
    with get_session() as session:
        repo = NotificationRepository(session)
        for index, kind in enumerate(["watchlist", "watchlist", "nearby_alert"]):
            repo.add(
                Notification(
                    id=f"n-{index}",
                    criteria_id="c-1",
                    listing_id=f"ad-{index}",
                    owner_id="user-1",
                    kind=kind,
                    created_at=base + timedelta(minutes=index),
                )
            )
        repo.add(Notification(id="n-other", criteria_id="c-9", listing_id="ad-0", owner_id="user-2"))
    return NotificationInbox()


class TestNotificationInbox:
    """Tests for NotificationInbox."""

    def test_list_newest_first(self, inbox):
        assert [n.id for n in inbox.list_for_owner("user-1")] == ["n-2", "n-1", "n-0"]

    def test_list_paging(self, inbox):
        assert [n.id for n in inbox.list_for_owner("user-1", limit=1, offset=1)] == ["n-1"]

    def test_mark_read_updates_unread_count(self, inbox):
        inbox.mark_read("n-1", "user-1")

        assert inbox.unread_count("user-1") == 2
        assert [n.id for n in inbox.list_for_owner("user-1", unread_only=True)] == ["n-2", "n-0"]

    def test_mark_read_is_idempotent(self, inbox):
        inbox.mark_read("n-1", "user-1")
        inbox.mark_read("n-1", "user-1")

        assert inbox.unread_count("user-1") == 2

    def test_mark_read_other_owner_is_not_found(self, inbox):
        with pytest.raises(NotificationNotFoundError):
            inbox.mark_read("n-other", "user-1")

        assert inbox.unread_count("user-2") == 1

    def test_mark_all_read(self, inbox):
        assert inbox.mark_all_read("user-1") == 3
        assert inbox.unread_count("user-1") == 0
        assert inbox.unread_count("user-2") == 1

    def test_read_at_is_set(self, inbox):
        inbox.mark_read("n-0", "user-1")

        read = [n for n in inbox.list_for_owner("user-1") if n.id == "n-0"][0]
        assert read.is_read is True
        assert read.read_at is not None

    def test_stats(self, inbox):
        inbox.mark_read("n-2", "user-1")

        stats = inbox.stats("user-1")

        assert stats.total == 3
        assert stats.unread == 2
        assert stats.by_kind == {"watchlist": 2, "nearby_alert": 1}

    def test_delivery_failures(self, inbox):
        with get_session() as session:
            DeliveryFailureRepository(session).add(
                DeliveryFailure(
                    notification_id="n-0", owner_id="user-1", channel="email", reason="bounced"
                )
            )

        failures = inbox.delivery_failures("user-1")

        assert [(f.channel, f.reason) for f in failures] == [("email", "bounced")]
        assert inbox.delivery_failures("user-2") == []
