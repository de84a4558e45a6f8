"""Dispatch ledger: the single authority on whether a pair was notified.

A claim inserts a row keyed by (criteria_id, listing_id). The primary key
is the concurrency control. Two workers racing on the same pair both try
the insert and the database lets exactly one of them succeed. Losing the
race is a normal outcome and is logged at DEBUG.
"""

from sqlalchemy.orm import Session

from alert_engine.domain.models import ClaimResult, DispatchRecord
from alert_engine.logging import get_logger
from alert_engine.persistence import (
    DataIntegrityError,
    DispatchRecordRepository,
    LedgerTimeoutError,
    TransientStorageError,
)
from alert_engine.utils.timestamps import utc_now

logger = get_logger(__name__, component="ledger")


class DispatchLedger:
    """Claims (criteria, listing) pairs for notification, at most once."""

    def try_claim(self, session: Session, criteria_id: str, listing_id: str) -> ClaimResult:
        """Atomically record the pair unless it is already recorded.

        Must be the first write in the session's transaction: a duplicate
        rolls the whole transaction back. The caller commits the claim
        together with the notification it authorizes.

        Args:
            session: Open session whose transaction will hold the claim
            criteria_id: Matched criterion
            listing_id: Matched listing

        Returns:
            CLAIMED if this call inserted the record, ALREADY_CLAIMED otherwise

        Raises:
            LedgerTimeoutError: If the datastore did not answer within its
                busy timeout. The claim may be retried.
        """
        repo = DispatchRecordRepository(session)
        try:
            if repo.exists(criteria_id, listing_id):
                self._log_duplicate(criteria_id, listing_id)
                return ClaimResult.ALREADY_CLAIMED
            repo.insert(DispatchRecord(criteria_id=criteria_id, listing_id=listing_id))
        except DataIntegrityError:
            # Lost the race to a concurrent claim between the check and the insert
            session.rollback()
            self._log_duplicate(criteria_id, listing_id)
            return ClaimResult.ALREADY_CLAIMED
        except TransientStorageError as e:
            session.rollback()
            raise LedgerTimeoutError(
                f"Claim for {criteria_id}/{listing_id} timed out: {e}"
            ) from e

        logger.debug(
            "Pair claimed",
            extra={
                "event": "ledger.claim.claimed",
                "criteria_id": criteria_id,
                "listing_id": listing_id,
                "claimed_at": utc_now().isoformat(),
            },
        )
        return ClaimResult.CLAIMED

    def is_claimed(self, session: Session, criteria_id: str, listing_id: str) -> bool:
        return DispatchRecordRepository(session).exists(criteria_id, listing_id)

    def _log_duplicate(self, criteria_id: str, listing_id: str) -> None:
        logger.debug(
            "Pair already claimed",
            extra={
                "event": "ledger.claim.duplicate",
                "criteria_id": criteria_id,
                "listing_id": listing_id,
            },
        )
