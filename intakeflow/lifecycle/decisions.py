"""Reviewer decisions.

A decision maps to a target status, is validated against the transition
graph, and is committed together with the status update. Nothing is written
when any check fails.

Check order:
1. Role >= REVIEWER, before touching any data (``Forbidden``)
2. Non-empty rationale (``ValidationError``)
3. Request exists in the caller's organization (``NotFound``)
4. Target status reachable from the current status (``InvalidTransition``)
"""

import logging

from ..config import DecisionType, RequestStatus, UserRole
from ..errors import Forbidden, ValidationError
from ..models import Actor, Decision
from ..notifications import NotificationDispatcher
from ..persistence.store import InMemoryStore
from .service import load_request, write_status
from .transitions import has_role

logger = logging.getLogger(__name__)

DECISION_STATUS_MAP: dict[DecisionType, RequestStatus] = {
    DecisionType.APPROVE: RequestStatus.APPROVED,
    DecisionType.REJECT: RequestStatus.REJECTED,
    DecisionType.DEFER: RequestStatus.DEFERRED,
    DecisionType.REQUEST_INFO: RequestStatus.NEEDS_INFO,
}


def require_reviewer(actor: Actor) -> None:
    if not has_role(actor.role, UserRole.REVIEWER):
        raise Forbidden("Insufficient permissions: REVIEWER role required")


class DecisionRecorder:
    """Records reviewer decisions and applies their status change."""

    def __init__(self, store: InMemoryStore, dispatcher: NotificationDispatcher | None = None):
        self.store = store
        self.dispatcher = dispatcher or NotificationDispatcher(store)

    def record_decision(
        self,
        request_id: str,
        decision: DecisionType | str,
        rationale: str,
        actor: Actor,
    ) -> Decision:
        """Record a decision and move the request to the mapped status.

        Returns:
            The persisted decision

        Raises:
            Forbidden: If the actor is below REVIEWER
            ValidationError: If the rationale is blank or the decision unknown
            NotFound: If the request is outside the actor's organization
            InvalidTransition: If the mapped status is not reachable
            ConflictError: If the request changed concurrently
        """
        require_reviewer(actor)

        if not rationale or not rationale.strip():
            raise ValidationError("Rationale is required")
        decision_type = _coerce_decision(decision)

        request = load_request(self.store, request_id, actor.organization_id)
        target = DECISION_STATUS_MAP[decision_type]

        with self.store.transaction():
            updated = write_status(self.store, request, target)
            record = self.store.insert_decision(
                Decision(
                    request_id=request.id,
                    user_id=actor.user_id,
                    decision=decision_type,
                    rationale=rationale,
                )
            )

        logger.info(
            f"Decision {decision_type.value} on {request.id} by {actor.user_id}: "
            f"{request.status.value} -> {target.value}"
        )
        self.dispatcher.status_changed(updated, request.status, actor, decision_type.value)
        return record

    def list_decisions(self, request_id: str, actor: Actor) -> list[Decision]:
        """Decision history of a request, newest first."""
        load_request(self.store, request_id, actor.organization_id)
        return self.store.list_decisions(request_id)


def _coerce_decision(value: DecisionType | str) -> DecisionType:
    if isinstance(value, DecisionType):
        return value
    try:
        return DecisionType(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown decision '{value}'. Valid: {', '.join(DecisionType.values())}"
        ) from e
