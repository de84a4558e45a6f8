"""Periodic re-scan of recently visible listings.

Catches matches the change feed alone would miss: criteria created or
re-activated after a listing was last evaluated. Every match still goes
through the dispatch ledger, so repeated scans never notify twice.
"""

import threading
from datetime import timedelta
from typing import Optional

from alert_engine.logging import get_logger
from alert_engine.logging.context import log_context
from alert_engine.matching import MatcherInvariantError
from alert_engine.persistence import ListingSnapshotRepository, TransientStorageError, get_session
from alert_engine.utils.timestamps import utc_now

from .coordinator import EngineCoordinator
from .models import RescanResult

logger = get_logger(__name__, component="rescan")


class PeriodicRescan:
    """Re-evaluates listings seen within a look-back window against all active criteria."""

    def __init__(
        self,
        coordinator: EngineCoordinator,
        window_seconds: int,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.coordinator = coordinator
        self.window_seconds = window_seconds
        self.cancel_event = cancel_event or threading.Event()
        self._lock = threading.Lock()

    def run(self) -> RescanResult:
        """Run one pass.

        Only one pass runs at a time; a call made while another pass is in
        progress returns an empty, cancelled result.

        Raises:
            MatcherInvariantError: A malformed criterion aborts the pass
        """
        if not self._lock.acquire(blocking=False):
            logger.info("Re-scan already running, skipping", extra={"event": "rescan.skipped"})
            return RescanResult(cancelled=True)

        try:
            return self._run()
        finally:
            self._lock.release()

    def _run(self) -> RescanResult:
        started = utc_now()
        cutoff = started - timedelta(seconds=self.window_seconds)
        result = RescanResult()

        with get_session() as session:
            listings = ListingSnapshotRepository(session).list_visible_since(cutoff)
        criteria = self.coordinator.criteria_loader()
        result.criteria_count = len(criteria)

        logger.info(
            f"Re-scan started: {len(listings)} listings, {len(criteria)} active criteria",
            extra={
                "event": "rescan.started",
                "listings": len(listings),
                "criteria": len(criteria),
                "window_seconds": self.window_seconds,
            },
        )

        for listing in listings:
            if self.cancel_event.is_set():
                result.cancelled = True
                logger.info(
                    "Re-scan cancelled",
                    extra={"event": "rescan.cancelled", "scanned": result.listings_scanned},
                )
                break
            with log_context(listing_id=listing.id):
                try:
                    outcome = self.coordinator.evaluate(listing, criteria)
                except TransientStorageError as e:
                    result.errors += 1
                    self.coordinator.stats.increment("errors")
                    logger.warning(
                        f"Storage timeout re-scanning listing {listing.id}, continuing: {e}",
                        extra={"event": "rescan.listing.failed"},
                    )
                    continue
                except MatcherInvariantError as e:
                    logger.error(
                        f"Re-scan aborted by malformed criteria: {e}",
                        extra={"event": "rescan.aborted", "criteria_id": e.criteria_id},
                    )
                    raise
            result.listings_scanned += 1
            result.matched += len(outcome.matched)
            result.claimed += len(outcome.claimed)
            result.duplicates += len(outcome.duplicates)

        duration = (utc_now() - started).total_seconds()
        logger.info(
            f"Re-scan finished: {result.listings_scanned} listings, "
            f"{result.claimed} new notifications, {result.duplicates} already notified",
            extra={
                "event": "rescan.completed",
                "scanned": result.listings_scanned,
                "matched": result.matched,
                "claimed": result.claimed,
                "duplicates": result.duplicates,
                "errors": result.errors,
                "duration_seconds": round(duration, 3),
            },
        )
        return result
