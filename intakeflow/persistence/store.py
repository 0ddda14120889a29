"""In-memory persistence store.

The store is the lifecycle engine's only shared mutable resource. It offers
get/insert/update/filter per entity plus two guarantees the engine relies on:

- **Compare-and-swap on requests**: every request row carries ``version``;
  ``update_request(..., expected_version=n)`` raises ``ConflictError`` if the
  row has moved on. Each successful write bumps the version.
- **Unit of work**: ``transaction()`` groups writes so they commit together
  or not at all. Transactions nest; only the outermost one commits.

Models are copied on the way in and on the way out, so callers never hold a
reference into the store's tables.
"""

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

from ..config import RequestStatus
from ..errors import ConflictError, NotFound
from ..models import (
    Decision,
    Epic,
    FeatureRequest,
    Integration,
    Member,
    Organization,
    OutcomeEntry,
    RepositoryLink,
    SyncLogEntry,
    UserStory,
    utcnow,
)

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Thread-safe in-memory store with optimistic concurrency on requests."""

    _TABLES = (
        "organizations",
        "members",
        "requests",
        "decisions",
        "outcomes",
        "epics",
        "stories",
        "repository_links",
        "integrations",
        "sync_log",
    )

    def __init__(self):
        self._lock = threading.RLock()
        self._depth = 0
        self.organizations: dict[str, Organization] = {}
        self.members: dict[tuple[str, str], Member] = {}
        self.requests: dict[str, FeatureRequest] = {}
        self.decisions: dict[str, Decision] = {}
        self.outcomes: list[OutcomeEntry] = []
        self.epics: dict[str, Epic] = {}
        self.stories: dict[str, UserStory] = {}
        self.repository_links: dict[str, RepositoryLink] = {}
        self.integrations: dict[tuple[str, str], Integration] = {}
        self.sync_log: list[SyncLogEntry] = []

    # =========================================================================
    # Unit of work
    # =========================================================================

    @contextmanager
    def transaction(self, before_commit: Callable[[], None] | None = None) -> Iterator[None]:
        """Group writes into one atomic unit.

        Args:
            before_commit: Called just before the outermost commit. If it
                raises, every write in the unit is rolled back and the
                exception propagates.
        """
        with self._lock:
            outermost = self._depth == 0
            snapshot = self._snapshot() if outermost else None
            self._depth += 1
            try:
                yield
                if before_commit is not None:
                    before_commit()
            except BaseException:
                if outermost:
                    self._restore(snapshot)
                    logger.debug("Transaction rolled back")
                raise
            finally:
                self._depth -= 1
            if outermost:
                self._on_commit()

    def _snapshot(self) -> dict[str, Any]:
        # Stored models are never mutated in place, so shallow copies suffice.
        return {name: getattr(self, name).copy() for name in self._TABLES}

    def _restore(self, snapshot: dict[str, Any]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    def _on_commit(self) -> None:
        """Hook for durable subclasses."""
        pass

    # =========================================================================
    # Organizations and members
    # =========================================================================

    def add_organization(self, organization: Organization) -> Organization:
        with self.transaction():
            self.organizations[organization.id] = organization.model_copy(deep=True)
        return organization

    def get_organization(self, organization_id: str) -> Organization | None:
        with self._lock:
            org = self.organizations.get(organization_id)
            return org.model_copy(deep=True) if org else None

    def update_organization(self, organization_id: str, **changes: Any) -> Organization:
        with self.transaction():
            current = self.organizations.get(organization_id)
            if current is None:
                raise NotFound(f"Organization {organization_id} not found")
            updated = Organization.model_validate({**current.model_dump(), **changes})
            self.organizations[organization_id] = updated
        return updated.model_copy(deep=True)

    def add_member(self, member: Member) -> Member:
        with self.transaction():
            self.members[(member.organization_id, member.user_id)] = member.model_copy()
        return member

    def get_member(self, organization_id: str, user_id: str) -> Member | None:
        with self._lock:
            member = self.members.get((organization_id, user_id))
            return member.model_copy() if member else None

    def list_members(self, organization_id: str) -> list[Member]:
        with self._lock:
            return [
                m.model_copy()
                for (org_id, _), m in self.members.items()
                if org_id == organization_id
            ]

    # =========================================================================
    # Feature requests
    # =========================================================================

    def insert_request(self, request: FeatureRequest) -> FeatureRequest:
        with self.transaction():
            self.requests[request.id] = request.model_copy(deep=True)
        return request.model_copy(deep=True)

    def get_request(self, request_id: str) -> FeatureRequest | None:
        with self._lock:
            request = self.requests.get(request_id)
            return request.model_copy(deep=True) if request else None

    def update_request(
        self, request_id: str, expected_version: int | None = None, **changes: Any
    ) -> FeatureRequest:
        """Apply ``changes`` to a request and bump its version.

        Raises:
            NotFound: If the request does not exist
            ConflictError: If ``expected_version`` no longer matches
        """
        with self.transaction():
            current = self.requests.get(request_id)
            if current is None:
                raise NotFound(f"Feature request {request_id} not found")
            if expected_version is not None and current.version != expected_version:
                raise ConflictError(request_id, expected_version, current.version)

            data = current.model_dump()
            data.update(changes)
            data["version"] = current.version + 1
            data["updated_at"] = utcnow()
            updated = FeatureRequest.model_validate(data)
            self.requests[request_id] = updated

            if "status" in changes and changes["status"] != current.status:
                logger.info(
                    f"Request {request_id} status {current.status.value} -> "
                    f"{updated.status.value} (v{updated.version})"
                )
        return updated.model_copy(deep=True)

    def list_requests(
        self,
        organization_id: str,
        statuses: tuple[RequestStatus, ...] | list[RequestStatus] | None = None,
        predicate: Callable[[FeatureRequest], bool] | None = None,
    ) -> list[FeatureRequest]:
        """Requests of an organization, newest first."""
        with self._lock:
            rows = [
                r
                for r in reversed(list(self.requests.values()))
                if r.organization_id == organization_id
                and (statuses is None or r.status in statuses)
                and (predicate is None or predicate(r))
            ]
            # Reversed insertion order first, so ties stay newest first
            rows.sort(key=lambda r: r.created_at, reverse=True)
            return [r.model_copy(deep=True) for r in rows]

    # =========================================================================
    # Decisions and outcome log
    # =========================================================================

    def insert_decision(self, decision: Decision) -> Decision:
        with self.transaction():
            self.decisions[decision.id] = decision.model_copy()
        return decision.model_copy()

    def get_decision(self, decision_id: str) -> Decision | None:
        with self._lock:
            decision = self.decisions.get(decision_id)
            return decision.model_copy() if decision else None

    def update_decision(self, decision_id: str, **changes: Any) -> Decision:
        with self.transaction():
            current = self.decisions.get(decision_id)
            if current is None:
                raise NotFound(f"Decision {decision_id} not found")
            updated = current.model_copy(update=changes)
            self.decisions[decision_id] = updated
        return updated.model_copy()

    def list_decisions(self, request_id: str) -> list[Decision]:
        """Decisions on a request, newest first."""
        with self._lock:
            rows = [
                d for d in reversed(list(self.decisions.values())) if d.request_id == request_id
            ]
            rows.sort(key=lambda d: d.created_at, reverse=True)
            return [d.model_copy() for d in rows]

    def append_outcome(self, entry: OutcomeEntry) -> OutcomeEntry:
        with self.transaction():
            self.outcomes.append(entry.model_copy())
        return entry

    def list_outcomes(self, decision_id: str) -> list[OutcomeEntry]:
        """Outcome log of a decision, oldest first."""
        with self._lock:
            return [e.model_copy() for e in self.outcomes if e.decision_id == decision_id]

    # =========================================================================
    # Epics and stories
    # =========================================================================

    def insert_epic(self, epic: Epic) -> Epic:
        with self.transaction():
            self.epics[epic.id] = epic.model_copy(deep=True)
        return epic.model_copy(deep=True)

    def get_epic(self, epic_id: str) -> Epic | None:
        with self._lock:
            epic = self.epics.get(epic_id)
            return epic.model_copy(deep=True) if epic else None

    def get_epic_for_request(self, request_id: str) -> Epic | None:
        with self._lock:
            for epic in self.epics.values():
                if epic.request_id == request_id:
                    return epic.model_copy(deep=True)
            return None

    def update_epic(self, epic_id: str, **changes: Any) -> Epic:
        with self.transaction():
            current = self.epics.get(epic_id)
            if current is None:
                raise NotFound(f"Epic {epic_id} not found")
            updated = current.model_copy(update=changes)
            self.epics[epic_id] = updated
        return updated.model_copy(deep=True)

    def insert_story(self, story: UserStory) -> UserStory:
        """Append a story to its epic; ``order`` is assigned from insertion order."""
        with self.transaction():
            position = sum(1 for s in self.stories.values() if s.epic_id == story.epic_id)
            stored = story.model_copy(update={"order": position}, deep=True)
            self.stories[stored.id] = stored
        return stored.model_copy(deep=True)

    def update_story(self, story_id: str, **changes: Any) -> UserStory:
        with self.transaction():
            current = self.stories.get(story_id)
            if current is None:
                raise NotFound(f"User story {story_id} not found")
            updated = current.model_copy(update=changes)
            self.stories[story_id] = updated
        return updated.model_copy(deep=True)

    def list_stories(self, epic_id: str) -> list[UserStory]:
        with self._lock:
            rows = [s for s in self.stories.values() if s.epic_id == epic_id]
            rows.sort(key=lambda s: s.order)
            return [s.model_copy(deep=True) for s in rows]

    # =========================================================================
    # Integrations and sync log
    # =========================================================================

    def set_repository_link(self, link: RepositoryLink) -> RepositoryLink:
        with self.transaction():
            self.repository_links[link.organization_id] = link.model_copy()
        return link

    def get_repository_link(self, organization_id: str) -> RepositoryLink | None:
        with self._lock:
            link = self.repository_links.get(organization_id)
            return link.model_copy() if link else None

    def set_integration(self, integration: Integration) -> Integration:
        with self.transaction():
            key = (integration.organization_id, integration.type)
            self.integrations[key] = integration.model_copy(deep=True)
        return integration

    def get_integration(self, organization_id: str, integration_type: str) -> Integration | None:
        with self._lock:
            integration = self.integrations.get((organization_id, integration_type))
            if integration is None or not integration.is_active:
                return None
            return integration.model_copy(deep=True)

    def append_sync_log(self, entry: SyncLogEntry) -> SyncLogEntry:
        with self.transaction():
            self.sync_log.append(entry.model_copy())
        return entry

    def list_sync_log(
        self, organization_id: str, entity_id: str | None = None
    ) -> list[SyncLogEntry]:
        with self._lock:
            return [
                e.model_copy()
                for e in self.sync_log
                if e.organization_id == organization_id
                and (entity_id is None or e.entity_id == entity_id)
            ]
