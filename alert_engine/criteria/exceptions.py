"""Criteria CRUD exceptions."""

from typing import List, Optional


class CriteriaError(Exception):
    """Base exception for criteria operations."""

    pass


class CriteriaValidationError(CriteriaError):
    """Raised when a criterion fails validation at the write boundary.

    Carries one message per problem (prefixed with the field name) so a form
    can show them inline.
    """

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        details = "; ".join(self.errors)
        super().__init__(f"{message}: {details}" if details else message)

    @property
    def fields(self) -> List[str]:
        """Names of the fields that failed validation."""
        return [error.split(":", 1)[0].strip() for error in self.errors]


class CriteriaNotFoundError(CriteriaError):
    """Raised when a criterion does not exist or belongs to another owner."""

    pass
