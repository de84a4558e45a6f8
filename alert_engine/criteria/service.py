"""Criteria CRUD service.

The only write path for standing queries. Every create and update is
validated as a whole before it reaches storage, so the matcher only ever sees
criteria that satisfy the model invariants. Mutations are scoped to the
owner: another owner's id behaves exactly like a missing one.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from alert_engine.domain.models import Criteria
from alert_engine.logging import get_logger
from alert_engine.persistence import CriteriaRepository, get_session
from alert_engine.utils.timestamps import utc_now

from .builders import CriteriaDraft, build_draft, quick_nearby_alert_draft, validation_messages
from .exceptions import CriteriaNotFoundError, CriteriaValidationError

logger = get_logger(__name__, component="criteria")

UPDATABLE_FIELDS = frozenset(CriteriaDraft.model_fields)


def validate_criteria(criteria: Criteria) -> None:
    """Raise CriteriaValidationError listing every broken invariant."""
    problems = criteria.invariant_violations()
    if problems:
        raise CriteriaValidationError("Invalid criteria", errors=problems)


class CriteriaService:
    """Create, read, update, toggle and delete criteria for their owners."""

    def create(self, owner_id: str, draft: Union[CriteriaDraft, Dict[str, Any]]) -> Criteria:
        """Validate and persist a new criterion.

        Args:
            owner_id: Owning user
            draft: A builder-produced draft or a plain mapping of draft fields

        Returns:
            The stored criterion

        Raises:
            CriteriaValidationError: If any field or invariant is invalid
        """
        if not isinstance(draft, CriteriaDraft):
            draft = build_draft(**draft)

        now = utc_now()
        criteria = self._build(
            {**draft.model_dump(), "owner_id": owner_id, "created_at": now, "updated_at": now}
        )

        with get_session() as session:
            stored = CriteriaRepository(session).add(criteria)

        logger.info(
            f"Criteria '{stored.name}' created",
            extra={
                "event": "criteria.created",
                "criteria_id": stored.id,
                "owner_id": owner_id,
                "kind": stored.kind.value,
            },
        )
        return stored

    def quick_nearby_alert(
        self,
        owner_id: str,
        latitude: float,
        longitude: float,
        address: Optional[str] = None,
    ) -> Criteria:
        """Create a default nearby alert (25 km) at the given coordinates."""
        return self.create(owner_id, quick_nearby_alert_draft(latitude, longitude, address))

    def get(self, criteria_id: str, owner_id: str) -> Criteria:
        """
        Raises:
            CriteriaNotFoundError: If missing or owned by someone else
        """
        with get_session() as session:
            criteria = CriteriaRepository(session).get_for_owner(criteria_id, owner_id)
        if criteria is None:
            raise CriteriaNotFoundError(f"Criteria {criteria_id} not found")
        return criteria

    def list_for_owner(self, owner_id: str) -> List[Criteria]:
        """All of an owner's criteria, newest first (inactive included)."""
        with get_session() as session:
            return CriteriaRepository(session).list_for_owner(owner_id)

    def update(self, criteria_id: str, owner_id: str, **changes: Any) -> Criteria:
        """Apply a partial update and re-validate the resulting criterion.

        Raises:
            CriteriaValidationError: If a field is unknown or the result is invalid
            CriteriaNotFoundError: If missing or owned by someone else
        """
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise CriteriaValidationError(
                "Invalid criteria update",
                errors=[f"{name}: not an updatable field" for name in unknown],
            )

        with get_session() as session:
            repo = CriteriaRepository(session)
            existing = repo.get_for_owner(criteria_id, owner_id)
            if existing is None:
                raise CriteriaNotFoundError(f"Criteria {criteria_id} not found")

            merged = {**existing.model_dump(), **changes, "updated_at": utc_now()}
            updated = repo.update(self._build(merged))

        logger.info(
            f"Criteria '{updated.name}' updated",
            extra={
                "event": "criteria.updated",
                "criteria_id": criteria_id,
                "owner_id": owner_id,
                "fields": ",".join(sorted(changes)),
            },
        )
        return updated

    def set_active(self, criteria_id: str, owner_id: str, is_active: bool) -> Criteria:
        """Pause or resume a criterion. Paused criteria keep their history."""
        criteria = self.update(criteria_id, owner_id, is_active=is_active)
        logger.info(
            f"Criteria {'activated' if is_active else 'paused'}",
            extra={
                "event": "criteria.activated" if is_active else "criteria.paused",
                "criteria_id": criteria_id,
                "owner_id": owner_id,
            },
        )
        return criteria

    def delete(self, criteria_id: str, owner_id: str) -> None:
        """Delete a criterion. Its notifications and ledger entries are kept.

        Raises:
            CriteriaNotFoundError: If missing or owned by someone else
        """
        with get_session() as session:
            repo = CriteriaRepository(session)
            if repo.get_for_owner(criteria_id, owner_id) is None:
                raise CriteriaNotFoundError(f"Criteria {criteria_id} not found")
            repo.delete(criteria_id)

        logger.info(
            "Criteria deleted",
            extra={"event": "criteria.deleted", "criteria_id": criteria_id, "owner_id": owner_id},
        )

    def _build(self, fields: Dict[str, Any]) -> Criteria:
        try:
            criteria = Criteria.model_validate(fields)
        except ValidationError as e:
            raise CriteriaValidationError(
                "Invalid criteria", errors=validation_messages(e)
            ) from e

        try:
            validate_criteria(criteria)
        except CriteriaValidationError as e:
            logger.info(
                "Criteria rejected",
                extra={
                    "event": "criteria.validation_failed",
                    "owner_id": criteria.owner_id,
                    "errors": "; ".join(e.errors),
                },
            )
            raise
        return criteria
