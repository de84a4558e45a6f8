"""Matching of listing snapshots against active criteria.

This module provides:
- CriteriaMatcher: rule evaluation for one listing against many criteria
- CriteriaSet: category-indexed snapshot of active criteria
- MatchDecision: per-criterion outcome with the failing rule
- MatcherInvariantError: raised for malformed criteria
"""

from .engine import CriteriaMatcher
from .exceptions import MatcherInvariantError
from .models import CriteriaSet, MatchDecision, Rule

__all__ = [
    "CriteriaMatcher",
    "CriteriaSet",
    "MatchDecision",
    "MatcherInvariantError",
    "Rule",
]
