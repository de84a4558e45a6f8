"""Criteria matching engine.

Evaluates one listing snapshot against the active criteria of every owner.
A criterion matches when every constraint it sets holds:

1. Keywords: each token is a case-insensitive substring of the title or
   the description.
2. Category: equal to the listing's category.
3. Price: the listing has a price within [min_price, max_price]; unpriced
   listings never satisfy a price bound.
4. Geo: a radius needs coordinates on both sides and distance <= radius.
   Missing coordinates on either side make the constraint unsatisfiable.
5. Inactive criteria are skipped before any other work.
"""

import logging
from typing import List, Optional

from alert_engine.domain.models import Criteria, ListingSnapshot, MatchEvent
from alert_engine.geo import InvalidCoordinateError, distance_km
from alert_engine.utils.timestamps import utc_now

from .exceptions import MatcherInvariantError
from .models import CriteriaSet, MatchDecision, Rule

logger = logging.getLogger(__name__)


class CriteriaMatcher:
    """Decides which criteria a listing satisfies."""

    def __init__(self, logger_instance: logging.Logger = None):
        self.logger = logger_instance or logger

    def match(self, listing: ListingSnapshot, criteria: CriteriaSet) -> List[MatchEvent]:
        """Return a MatchEvent for every criterion the listing satisfies.

        Args:
            listing: Listing snapshot to evaluate
            criteria: Snapshot of active criteria

        Returns:
            Match events in criteria order (empty for invisible listings)

        Raises:
            MatcherInvariantError: If any candidate criterion is malformed.
                Nothing is returned for the batch in that case.
        """
        if not listing.is_visible:
            return []

        candidates = criteria.candidates_for(listing.category_id)
        for candidate in candidates:
            problems = candidate.invariant_violations()
            if problems:
                raise MatcherInvariantError(candidate.id, problems)

        haystack = _searchable_text(listing)
        matched_at = utc_now()
        matches = []
        for candidate in candidates:
            decision = self._evaluate(candidate, listing, haystack)
            if decision.is_match:
                matches.append(
                    MatchEvent(
                        criteria_id=candidate.id,
                        listing_id=listing.id,
                        matched_at=matched_at,
                        distance_km=decision.distance_km,
                    )
                )
            else:
                self.logger.debug(
                    f"Criteria {candidate.id} rejected listing {listing.id} on {decision.failed_rule}"
                )
        return matches

    def evaluate(self, criteria: Criteria, listing: ListingSnapshot) -> MatchDecision:
        """Evaluate a single criterion, reporting the first rule that failed.

        Raises:
            MatcherInvariantError: If the criterion is malformed
        """
        if not criteria.is_active:
            return MatchDecision(criteria.id, False, Rule.INACTIVE)
        problems = criteria.invariant_violations()
        if problems:
            raise MatcherInvariantError(criteria.id, problems)
        return self._evaluate(criteria, listing, _searchable_text(listing))

    def _evaluate(self, criteria: Criteria, listing: ListingSnapshot, haystack) -> MatchDecision:
        if not criteria.is_active:
            return MatchDecision(criteria.id, False, Rule.INACTIVE)

        if not _keywords_match(criteria.keywords, haystack):
            return MatchDecision(criteria.id, False, Rule.KEYWORDS)

        if criteria.category_id is not None and listing.category_id != criteria.category_id:
            return MatchDecision(criteria.id, False, Rule.CATEGORY)

        if not _price_matches(criteria, listing.price):
            return MatchDecision(criteria.id, False, Rule.PRICE)

        distance = None
        if criteria.radius_km is not None:
            distance = self._distance(criteria, listing)
            if distance is None or distance > criteria.radius_km:
                return MatchDecision(criteria.id, False, Rule.GEO, distance)

        return MatchDecision(criteria.id, True, distance_km=distance)

    def _distance(self, criteria: Criteria, listing: ListingSnapshot) -> Optional[float]:
        if not criteria.has_anchor or not listing.has_coordinates:
            return None
        try:
            return distance_km(
                criteria.latitude, criteria.longitude, listing.latitude, listing.longitude
            )
        except InvalidCoordinateError as e:
            # Criteria coordinates were validated, so the listing is at fault
            self.logger.warning(
                f"Listing {listing.id} has invalid coordinates, treating as unlocated: {e}"
            )
            return None


def _searchable_text(listing: ListingSnapshot):
    return (listing.title.lower(), listing.description.lower())


def _keywords_match(keywords: List[str], haystack) -> bool:
    title, description = haystack
    return all(token in title or token in description for token in keywords)


def _price_matches(criteria: Criteria, price: Optional[float]) -> bool:
    if not criteria.has_price_bounds:
        return True
    if price is None:
        return False
    if criteria.min_price is not None and price < criteria.min_price:
        return False
    if criteria.max_price is not None and price > criteria.max_price:
        return False
    return True
