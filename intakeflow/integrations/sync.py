"""Push generated epics and stories to an issue tracker.

Design Principles:
- The epic is pushed first; if that fails nothing else is attempted
- Each story is pushed independently: a failing story is logged as FAILED
  in the sync log and the rest still go out
- Everything already pushed to the same provider (SUCCESS in the sync log)
  is reused, so a retry only pushes what is missing
- Manual syncs require the REVIEWER role; the Output stage driver calls
  ``auto_sync`` after the stage completes
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from ..errors import ExternalFailure, NotFound, ValidationError
from ..lifecycle.decisions import require_reviewer
from ..lifecycle.service import load_request
from ..models import Actor, Epic, SyncLogEntry, UserStory
from ..persistence.store import InMemoryStore
from .jira import JiraClient
from .linear import LinearClient

logger = logging.getLogger(__name__)


class SyncProvider(Enum):
    """Issue trackers an epic can be pushed to."""

    JIRA = "JIRA"
    LINEAR = "LINEAR"


def story_description(story: UserStory) -> str:
    """Tracker description for a story: its narrative plus acceptance criteria."""
    text = story.narrative
    if story.acceptance_criteria:
        text += "\n\nAcceptance criteria:\n\n" + "\n\n".join(story.acceptance_criteria)
    return text


# =============================================================================
# Tracker targets
# =============================================================================


class TrackerTarget(ABC):
    """Where an epic and its stories are created."""

    provider: SyncProvider

    @abstractmethod
    def push_epic(self, epic: Epic) -> tuple[str, str]:
        """Create the epic; return (external key, url)."""
        pass

    @abstractmethod
    def push_story(self, story: UserStory, epic_key: str) -> tuple[str, str]:
        """Create a story under the epic; return (external key, url)."""
        pass


class JiraTarget(TrackerTarget):
    provider = SyncProvider.JIRA

    def __init__(self, client: JiraClient, project_key: str):
        self.client = client
        self.project_key = project_key

    def push_epic(self, epic: Epic) -> tuple[str, str]:
        issue = self.client.create_issue(self.project_key, "Epic", epic.title, epic.description)
        return issue.key, issue.url

    def push_story(self, story: UserStory, epic_key: str) -> tuple[str, str]:
        issue = self.client.create_issue(
            self.project_key,
            "Story",
            story.title,
            story_description(story),
            extra_fields={"parent": {"key": epic_key}},
        )
        return issue.key, issue.url


class LinearTarget(TrackerTarget):
    provider = SyncProvider.LINEAR

    def __init__(self, client: LinearClient, team_id: str):
        self.client = client
        self.team_id = team_id

    def push_epic(self, epic: Epic) -> tuple[str, str]:
        project = self.client.create_project(self.team_id, epic.title, epic.description)
        return project.key, project.url

    def push_story(self, story: UserStory, epic_key: str) -> tuple[str, str]:
        issue = self.client.create_issue(
            self.team_id, story.title, story_description(story), project_id=epic_key
        )
        return issue.key, issue.url


def _tracker_call(provider: SyncProvider, push, *args: Any) -> tuple[str, str]:
    """Run one tracker push, reporting any failure as ``ExternalFailure``."""
    try:
        return push(*args)
    except ExternalFailure:
        raise
    except Exception as e:
        raise ExternalFailure(
            provider.value.lower(), f"unexpected {type(e).__name__}: {e}"
        ) from e


# =============================================================================
# Sync service
# =============================================================================


@dataclass
class SyncResult:
    """Outcome of pushing one epic."""

    provider: SyncProvider
    epic_key: str
    epic_url: str
    synced: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider.value,
            "epicKey": self.epic_key,
            "epicUrl": self.epic_url,
            "syncedStories": self.synced,
            "skippedStories": self.skipped,
            "failedStories": self.failed,
        }


class EpicSyncService:
    """Pushes an epic and its stories to Jira or Linear."""

    def __init__(self, store: InMemoryStore, transport: httpx.BaseTransport | None = None):
        self.store = store
        self._transport = transport

    def target_for(
        self, organization_id: str, provider: SyncProvider, destination: str | None = None
    ) -> TrackerTarget:
        """Build the tracker target from the organization's integration record.

        Args:
            organization_id: Owning organization
            provider: Tracker to push to
            destination: Jira project key or Linear team id; defaults to the
                integration's ``defaultProjectKey`` / ``defaultTeamId``

        Raises:
            NotFound: If the integration is missing or inactive
            ValidationError: If no destination is configured
            ExternalFailure: If the integration's credentials are incomplete
        """
        integration = self.store.get_integration(organization_id, provider.value)
        if integration is None:
            raise NotFound(f"No {provider.value.title()} integration found")
        config = integration.config

        if provider == SyncProvider.JIRA:
            project_key = destination or config.get("defaultProjectKey")
            if not project_key:
                raise ValidationError("No Jira project key specified")
            client = JiraClient.from_config(config, transport=self._transport)
            return JiraTarget(client, project_key)

        team_id = destination or config.get("defaultTeamId")
        if not team_id:
            raise ValidationError("No Linear team ID specified")
        return LinearTarget(LinearClient.from_config(config, transport=self._transport), team_id)

    def sync(
        self,
        request_id: str,
        provider: SyncProvider | str,
        actor: Actor,
        destination: str | None = None,
        target: TrackerTarget | None = None,
    ) -> SyncResult:
        """Manual sync of a request's epic (REVIEWER or above).

        Raises:
            Forbidden: If the actor is below REVIEWER
            NotFound: If the request, its epic or the integration is missing
            ExternalFailure: If the epic itself cannot be pushed
        """
        require_reviewer(actor)
        provider = SyncProvider(provider) if isinstance(provider, str) else provider
        request = load_request(self.store, request_id, actor.organization_id)
        epic = self.store.get_epic_for_request(request.id)
        if epic is None:
            raise NotFound("No epic found for this request")

        target = target or self.target_for(actor.organization_id, provider, destination)
        return self._push(actor.organization_id, epic, target)

    def auto_sync(self, request_id: str) -> list[SyncResult]:
        """Push to every active tracker integration configured with ``autoSync``.

        Called by the Output stage driver; failures are logged, not raised.
        """
        request = self.store.get_request(request_id)
        epic = self.store.get_epic_for_request(request_id) if request else None
        if epic is None:
            return []

        results = []
        for provider in SyncProvider:
            integration = self.store.get_integration(request.organization_id, provider.value)
            if integration is None or not integration.config.get("autoSync"):
                continue
            try:
                target = self.target_for(request.organization_id, provider)
                results.append(self._push(request.organization_id, epic, target))
            except (ExternalFailure, ValidationError) as e:
                logger.warning(f"Auto-sync of {request_id} to {provider.value} failed: {e}")
            except Exception as e:
                logger.warning(
                    f"Auto-sync of {request_id} to {provider.value} failed unexpectedly: {e!r}",
                    exc_info=True,
                )
        return results

    def _push(self, organization_id: str, epic: Epic, target: TrackerTarget) -> SyncResult:
        provider = target.provider
        history = [
            e
            for e in self.store.list_sync_log(organization_id)
            if e.provider == provider.value and e.status == "SUCCESS"
        ]
        done = {e.entity_id: e for e in history}

        previous_epic = done.get(epic.id)
        if previous_epic and previous_epic.external_key == epic.external_key:
            epic_key, epic_url = epic.external_key, epic.external_url or ""
            logger.info(f"Epic {epic.id} already in {provider.value} as {epic_key}")
        else:
            try:
                epic_key, epic_url = _tracker_call(provider, target.push_epic, epic)
            except ExternalFailure as e:
                self._log(organization_id, provider, "EPIC", epic.id, "", "FAILED", str(e))
                raise
            self.store.update_epic(epic.id, external_key=epic_key, external_url=epic_url)
            self._log(organization_id, provider, "EPIC", epic.id, epic_key, "SUCCESS")

        result = SyncResult(provider=provider, epic_key=epic_key, epic_url=epic_url)
        for story in self.store.list_stories(epic.id):
            if story.id in done:
                result.skipped.append(story.id)
                continue
            try:
                key, url = _tracker_call(provider, target.push_story, story, epic_key)
            except ExternalFailure as e:
                logger.warning(f"Failed to push story {story.id} to {provider.value}: {e}")
                self._log(
                    organization_id,
                    provider,
                    "STORY",
                    story.id,
                    "",
                    "FAILED",
                    f"Failed to create {provider.value.title()} issue for: {story.title}",
                )
                result.failed.append(story.id)
                continue
            self.store.update_story(story.id, external_key=key, external_url=url)
            self._log(organization_id, provider, "STORY", story.id, key, "SUCCESS")
            result.synced.append(story.id)

        logger.info(
            f"Synced epic {epic.id} to {provider.value} as {epic_key}: "
            f"{len(result.synced)} pushed, {len(result.skipped)} skipped, "
            f"{len(result.failed)} failed"
        )
        return result

    def _log(
        self,
        organization_id: str,
        provider: SyncProvider,
        entity_type: str,
        entity_id: str,
        external_key: str,
        status: str,
        error: str | None = None,
    ) -> None:
        self.store.append_sync_log(
            SyncLogEntry(
                organization_id=organization_id,
                provider=provider.value,
                entity_type=entity_type,
                entity_id=entity_id,
                external_key=external_key,
                status=status,
                error=error,
            )
        )


__all__ = [
    "EpicSyncService",
    "JiraTarget",
    "LinearTarget",
    "SyncProvider",
    "SyncResult",
    "TrackerTarget",
    "story_description",
]
