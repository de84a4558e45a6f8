"""Engine coordinator: drives one listing event through its state machine.

    RECEIVED -> MATCHING -> CLAIMING (per match) -> DISPATCHED | SKIPPED -> DONE

Listings whose match-relevant fields are unchanged since the last successful
evaluation are not re-matched, except on reactivation. Each matched pair is
claimed in its own transaction together with its notification, so a committed
claim always has its notification and a retried event can never create a
second one.
Delivery happens after commit and never goes back to the ledger.
"""

import logging
from typing import TYPE_CHECKING, Callable, Optional

from alert_engine.domain.models import (
    ChangeKind,
    ClaimResult,
    Criteria,
    ListingEvent,
    ListingSnapshot,
    MatchEvent,
    Notification,
)
from alert_engine.ledger import DispatchLedger
from alert_engine.logging import get_logger
from alert_engine.logging.context import log_context
from alert_engine.matching import CriteriaMatcher, CriteriaSet, MatcherInvariantError
from alert_engine.notifications import Notifier
from alert_engine.persistence import (
    CriteriaRepository,
    DataIntegrityError,
    ListingSnapshotRepository,
    TransientStorageError,
    get_session,
)
from alert_engine.utils.timestamps import utc_now

from .models import EngineStats, EventOutcome, EventState

if TYPE_CHECKING:
    from .retry import EventRetryHandler

logger = get_logger(__name__, component="coordinator")


def load_active_criteria() -> CriteriaSet:
    """Snapshot read of all active criteria."""
    with get_session() as session:
        return CriteriaSet(CriteriaRepository(session).list_active())


class EngineCoordinator:
    """Consumes listing events: match, claim, notify, record."""

    def __init__(
        self,
        matcher: Optional[CriteriaMatcher] = None,
        ledger: Optional[DispatchLedger] = None,
        notifier: Optional[Notifier] = None,
        stats: Optional[EngineStats] = None,
        criteria_loader: Callable[[], CriteriaSet] = load_active_criteria,
        retry_handler: Optional["EventRetryHandler"] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self.matcher = matcher or CriteriaMatcher()
        self.ledger = ledger or DispatchLedger()
        self.notifier = notifier or Notifier()
        self.stats = stats or EngineStats()
        self.criteria_loader = criteria_loader
        self.retry_handler = retry_handler
        self.logger = logger_instance or logger

    def process(self, event: ListingEvent) -> EventOutcome:
        """Run one event to completion.

        Raises:
            TransientStorageError: Storage timed out; the event may be retried
                (claims already committed stay committed)
            MatcherInvariantError: A malformed criterion reached the matcher
        """
        outcome = EventOutcome(event_id=event.event_id, listing_id=event.listing_id)
        snapshot = event.snapshot

        with log_context(event_id=event.event_id, listing_id=event.listing_id):
            self.stats.increment("received")
            self.logger.info(
                f"Listing event received ({event.change_kind.value}, attempt {event.attempt})",
                extra={
                    "event": "engine.event.received",
                    "change_kind": event.change_kind.value,
                    "attempt": event.attempt,
                },
            )

            skip_reason = self._skip_reason(event)
            if skip_reason is not None:
                if skip_reason == "not_visible":
                    # Remember hidden state so a later reactivation is a change
                    self._record_snapshot(snapshot)
                else:
                    self.stats.increment("unchanged")
                outcome.skip_reason = skip_reason
                outcome.state = EventState.DONE
                self.logger.debug(
                    f"Listing not evaluated: {skip_reason}",
                    extra={"event": "engine.event.skipped", "reason": skip_reason},
                )
                return outcome

            self.evaluate(snapshot, self.criteria_loader(), outcome)
            self._record_snapshot(snapshot)

            outcome.state = EventState.DONE
            self.logger.info(
                f"Listing event done: {len(outcome.matched)} matched, "
                f"{len(outcome.claimed)} notified, {len(outcome.duplicates)} duplicates",
                extra={
                    "event": "engine.event.done",
                    "matched": len(outcome.matched),
                    "claimed": len(outcome.claimed),
                    "duplicates": len(outcome.duplicates),
                },
            )
            return outcome

    def handle(self, event: ListingEvent) -> EventOutcome:
        """Process an event and route any failure instead of raising.

        Storage timeouts go to the retry handler (requeue with backoff, dead
        letter once attempts run out). Malformed criteria and unexpected
        errors dead-letter the event at once; retrying cannot fix them.
        """
        try:
            return self.process(event)
        except TransientStorageError as e:
            outcome = self._failed_outcome(event, e)
            self.logger.warning(
                f"Storage timeout while processing listing {event.listing_id}: {e}",
                extra={
                    "event": "engine.event.storage_timeout",
                    "event_id": event.event_id,
                    "listing_id": event.listing_id,
                    "attempt": event.attempt,
                },
            )
            if self.retry_handler is None:
                raise
            if self.retry_handler.schedule_retry(event, str(e)):
                outcome.requeued = True
            else:
                outcome.dead_lettered = True
            return outcome
        except MatcherInvariantError as e:
            outcome = self._failed_outcome(event, e)
            self.logger.error(
                f"Malformed criteria while matching listing {event.listing_id}: {e}",
                extra={
                    "event": "engine.event.invariant_violation",
                    "event_id": event.event_id,
                    "listing_id": event.listing_id,
                    "criteria_id": e.criteria_id,
                },
            )
            if self.retry_handler is None:
                raise
            self.retry_handler.dead_letter(event, str(e))
            outcome.dead_lettered = True
            return outcome
        except Exception as e:
            outcome = self._failed_outcome(event, e)
            self.logger.error(
                f"Unexpected error processing listing {event.listing_id}: {e}",
                exc_info=True,
                extra={
                    "event": "engine.event.failed",
                    "event_id": event.event_id,
                    "listing_id": event.listing_id,
                },
            )
            if self.retry_handler is None:
                raise
            self.retry_handler.dead_letter(event, f"{type(e).__name__}: {e}")
            outcome.dead_lettered = True
            return outcome

    def _failed_outcome(self, event: ListingEvent, error: Exception) -> EventOutcome:
        self.stats.increment("errors")
        return EventOutcome(
            event_id=event.event_id,
            listing_id=event.listing_id,
            error=str(error),
        )

    def evaluate(
        self,
        snapshot: ListingSnapshot,
        criteria: CriteriaSet,
        outcome: Optional[EventOutcome] = None,
    ) -> EventOutcome:
        """Match a snapshot against criteria, then claim and notify each match.

        Used directly by the periodic re-scan, which skips change detection.

        Raises:
            TransientStorageError: If a claim or notification write timed out
            MatcherInvariantError: If a malformed criterion is encountered
        """
        if outcome is None:
            outcome = EventOutcome(event_id="rescan", listing_id=snapshot.id)

        outcome.state = EventState.MATCHING
        outcome.evaluated = True
        self.stats.increment("evaluated")
        matches = self.matcher.match(snapshot, criteria)
        outcome.matched = [m.criteria_id for m in matches]
        if matches:
            self.stats.increment("matched", len(matches))
            self.logger.debug(
                f"Listing matched {len(matches)} criteria",
                extra={"event": "engine.event.matched", "matched": len(matches)},
            )

        for match in matches:
            outcome.state = EventState.CLAIMING
            notification = self._claim_and_record(criteria.get(match.criteria_id), snapshot, match)
            if notification is None:
                outcome.duplicates.append(match.criteria_id)
                outcome.state = EventState.SKIPPED
                self.stats.increment("duplicates")
                continue

            outcome.claimed.append(match.criteria_id)
            outcome.notification_ids.append(notification.id)
            self.stats.increment("claimed")
            self.notifier.deliver(notification)
            self.stats.increment("notified")
            outcome.state = EventState.DISPATCHED

        return outcome

    def _claim_and_record(
        self, criteria: Criteria, snapshot: ListingSnapshot, match: MatchEvent
    ) -> Optional[Notification]:
        """Claim the pair and create its notification in one transaction.

        Returns:
            The committed notification, or None if the pair was already claimed
        """
        with log_context(criteria_id=criteria.id):
            try:
                with get_session() as session:
                    result = self.ledger.try_claim(session, criteria.id, snapshot.id)
                    if result == ClaimResult.ALREADY_CLAIMED:
                        return None
                    return self.notifier.create_notification(session, criteria, snapshot, match)
            except DataIntegrityError:
                # A notification for the pair exists; the transaction (and the
                # claim in it) was rolled back
                self.logger.debug(
                    "Notification already exists for pair",
                    extra={"event": "ledger.claim.duplicate", "source": "notification"},
                )
                return None

    def _skip_reason(self, event: ListingEvent) -> Optional[str]:
        snapshot = event.snapshot
        if not snapshot.is_visible:
            return "not_visible"
        # Always evaluated: the hidden state may never have been recorded
        if event.change_kind == ChangeKind.REACTIVATED:
            return None
        with get_session() as session:
            previous = ListingSnapshotRepository(session).get_fingerprint(snapshot.id)
        if previous is not None and previous == snapshot.fingerprint():
            return "unchanged"
        return None

    def _record_snapshot(self, snapshot: ListingSnapshot) -> None:
        try:
            with get_session() as session:
                ListingSnapshotRepository(session).upsert(snapshot, utc_now())
        except DataIntegrityError:
            # Lost an insert race with another worker; the row exists now
            with get_session() as session:
                ListingSnapshotRepository(session).upsert(snapshot, utc_now())


