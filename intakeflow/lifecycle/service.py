"""Request lifecycle service: creation, lookup and manual status changes.

Every status write in the package goes through ``write_status``: it checks
the transition graph, performs a compare-and-swap update against the
version the caller read, and leaves notification to the caller so that it
can run after the surrounding unit of work commits.
"""

import logging

from ..config import RequestStatus
from ..errors import InvalidTransition, NotFound, ValidationError
from ..models import Actor, FeatureRequest
from ..notifications import NotificationDispatcher
from ..persistence.store import InMemoryStore
from .transitions import StatusAction, can_transition, get_available_actions

logger = logging.getLogger(__name__)


def load_request(store: InMemoryStore, request_id: str, organization_id: str) -> FeatureRequest:
    """Fetch a request scoped to an organization.

    A request in another organization is reported exactly like a missing one.

    Raises:
        NotFound: If missing or owned by another organization
    """
    request = store.get_request(request_id)
    if request is None or request.organization_id != organization_id:
        raise NotFound("Feature request not found")
    return request


def write_status(
    store: InMemoryStore, request: FeatureRequest, target: RequestStatus, **changes
) -> FeatureRequest:
    """Move ``request`` to ``target`` with a compare-and-swap write.

    Args:
        store: Persistence store
        request: The request as read by the caller (its version is checked)
        target: New status
        **changes: Extra fields written in the same update

    Raises:
        InvalidTransition: If ``target`` is not a successor of the current status
        ConflictError: If the row changed since ``request`` was read
    """
    if not can_transition(request.status, target):
        raise InvalidTransition(request.status.value, target.value)
    return store.update_request(
        request.id, expected_version=request.version, status=target, **changes
    )


class LifecycleService:
    """Caller-facing operations on the request lifecycle."""

    def __init__(self, store: InMemoryStore, dispatcher: NotificationDispatcher | None = None):
        self.store = store
        self.dispatcher = dispatcher or NotificationDispatcher(store)

    def create_request(
        self,
        actor: Actor,
        title: str,
        summary: str | None = None,
        tags: list[str] | None = None,
    ) -> FeatureRequest:
        """Create a DRAFT request owned by the actor's organization."""
        if not title or not title.strip():
            raise ValidationError("title must not be empty")
        request = FeatureRequest(
            organization_id=actor.organization_id,
            requester_id=actor.user_id,
            title=title.strip(),
            summary=summary,
            tags=list(tags or []),
        )
        stored = self.store.insert_request(request)
        logger.info(f"Created request {stored.id} '{stored.title}' for {actor.organization_id}")
        return stored

    def get_request(self, request_id: str, actor: Actor) -> FeatureRequest:
        return load_request(self.store, request_id, actor.organization_id)

    def available_actions(self, request_id: str, actor: Actor) -> list[StatusAction]:
        request = self.get_request(request_id, actor)
        return get_available_actions(request.status, actor.role)

    def transition_status(
        self, request_id: str, target: RequestStatus | str, actor: Actor
    ) -> FeatureRequest:
        """Move a request via one of the actions offered to the actor's role.

        Raises:
            NotFound: If the request is outside the actor's organization
            InvalidTransition: If no available action targets ``target``
            ConflictError: If another writer changed the request first
        """
        target = _coerce_status(target)
        request = self.get_request(request_id, actor)

        allowed = any(
            action.target_status == target
            for action in get_available_actions(request.status, actor.role)
        )
        if not allowed:
            raise InvalidTransition(
                request.status.value,
                target.value,
                f"Cannot transition from {request.status.value} to {target.value} "
                f"with role {actor.role.value}",
            )

        updated = write_status(self.store, request, target)
        self.dispatcher.status_changed(updated, request.status, actor)
        return updated

    def start_intake(self, request: FeatureRequest, actor: Actor) -> FeatureRequest:
        """DRAFT -> INTAKE_IN_PROGRESS on the requester's behalf."""
        if request.status != RequestStatus.DRAFT:
            return request
        updated = write_status(self.store, request, RequestStatus.INTAKE_IN_PROGRESS)
        self.dispatcher.status_changed(updated, request.status, actor)
        return updated


def _coerce_status(value: RequestStatus | str) -> RequestStatus:
    if isinstance(value, RequestStatus):
        return value
    try:
        return RequestStatus(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown status '{value}'. Valid: {', '.join(RequestStatus.values())}"
        ) from e
