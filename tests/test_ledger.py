"""Tests for the dispatch ledger."""

import threading
from unittest.mock import Mock

import pytest

from alert_engine.domain.models import ClaimResult
from alert_engine.ledger import DispatchLedger
from alert_engine.persistence import (
    DataIntegrityError,
    DispatchRecordRepository,
    LedgerTimeoutError,
    TransientStorageError,
    get_session,
)


class TestTryClaim:
    """Tests for DispatchLedger.try_claim."""

    def test_first_claim_wins(self, database):
        ledger = DispatchLedger()

        with get_session() as session:
            assert ledger.try_claim(session, "c-1", "ad-1") == ClaimResult.CLAIMED

        with get_session() as session:
            assert ledger.is_claimed(session, "c-1", "ad-1") is True

    def test_second_claim_is_duplicate(self, database):
        ledger = DispatchLedger()
        with get_session() as session:
            ledger.try_claim(session, "c-1", "ad-1")

        with get_session() as session:
            assert ledger.try_claim(session, "c-1", "ad-1") == ClaimResult.ALREADY_CLAIMED

        with get_session() as session:
            assert DispatchRecordRepository(session).count() == 1

    def test_pairs_are_independent(self, database):
        ledger = DispatchLedger()

        with get_session() as session:
            assert ledger.try_claim(session, "c-1", "ad-1") == ClaimResult.CLAIMED
        with get_session() as session:
            assert ledger.try_claim(session, "c-2", "ad-1") == ClaimResult.CLAIMED
        with get_session() as session:
            assert ledger.try_claim(session, "c-1", "ad-2") == ClaimResult.CLAIMED

    def test_uncommitted_claim_is_not_recorded(self, database):
        ledger = DispatchLedger()

        with pytest.raises(RuntimeError):
            with get_session() as session:
                ledger.try_claim(session, "c-1", "ad-1")
                raise RuntimeError("notification write failed")

        with get_session() as session:
            assert ledger.try_claim(session, "c-1", "ad-1") == ClaimResult.CLAIMED

    def test_lost_race_on_insert_is_duplicate(self, monkeypatch):
        session = Mock()
        monkeypatch.setattr(DispatchRecordRepository, "exists", lambda self, c, l: False)

        def insert(self, record):
            raise DataIntegrityError("UNIQUE constraint failed")

        monkeypatch.setattr(DispatchRecordRepository, "insert", insert)

        result = DispatchLedger().try_claim(session, "c-1", "ad-1")

        assert result == ClaimResult.ALREADY_CLAIMED
        session.rollback.assert_called_once()

    def test_storage_timeout_raises_ledger_timeout(self, monkeypatch):
        session = Mock()

        def exists(self, criteria_id, listing_id):
            raise TransientStorageError("database is locked")

        monkeypatch.setattr(DispatchRecordRepository, "exists", exists)

        with pytest.raises(LedgerTimeoutError, match="timed out"):
            DispatchLedger().try_claim(session, "c-1", "ad-1")

        session.rollback.assert_called_once()

    def test_ledger_timeout_is_transient(self):
        assert issubclass(LedgerTimeoutError, TransientStorageError)


class TestConcurrentClaims:
    """Racing claims on one pair: exactly one winner."""

    def test_exactly_one_thread_claims(self, file_database):
        ledger = DispatchLedger()
        barrier = threading.Barrier(8)
        results = []
        lock = threading.Lock()

        def claim():
            barrier.wait()
            with get_session() as session:
                result = ledger.try_claim(session, "c-1", "ad-1")
            with lock:
                results.append(result)

        threads = [threading.Thread(target=claim) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert results.count(ClaimResult.CLAIMED) == 1
        assert results.count(ClaimResult.ALREADY_CLAIMED) == 7
        with get_session() as session:
            assert DispatchRecordRepository(session).count() == 1
