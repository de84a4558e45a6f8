"""Matcher exceptions."""

from typing import List


class MatcherInvariantError(Exception):
    """Raised when a criterion that bypassed validation reaches the matcher.

    The whole evaluation batch is rejected; no partial match set is returned.
    """

    def __init__(self, criteria_id: str, problems: List[str]):
        self.criteria_id = criteria_id
        self.problems = problems
        super().__init__(
            f"Criteria {criteria_id} violates invariants: {'; '.join(problems)}"
        )
