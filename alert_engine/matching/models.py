"""Data structures used by the matcher."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from alert_engine.domain.models import Criteria


class Rule:
    """Names of the matching rules, reported when a criterion is rejected."""

    INACTIVE = "inactive"
    KEYWORDS = "keywords"
    CATEGORY = "category"
    PRICE = "price"
    GEO = "geo"


@dataclass(frozen=True)
class MatchDecision:
    """Outcome of evaluating one criterion against one listing."""

    criteria_id: str
    is_match: bool
    failed_rule: Optional[str] = None
    distance_km: Optional[float] = None


class CriteriaSet:
    """Snapshot of active criteria, indexed by category.

    A listing can only match criteria with no category constraint or with its
    own category, so candidates_for() prunes everything else.
    """

    def __init__(self, criteria: Iterable[Criteria]):
        self._by_id: Dict[str, Criteria] = {}
        self._by_category: Dict[Optional[str], List[Criteria]] = defaultdict(list)
        for item in criteria:
            if not item.is_active:
                continue
            self._by_id[item.id] = item
            self._by_category[item.category_id].append(item)

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self):
        return iter(self._by_id.values())

    def get(self, criteria_id: str) -> Optional[Criteria]:
        return self._by_id.get(criteria_id)

    def candidates_for(self, category_id: Optional[str]) -> List[Criteria]:
        candidates = list(self._by_category.get(None, ()))
        if category_id is not None:
            candidates.extend(self._by_category.get(category_id, ()))
        return candidates
