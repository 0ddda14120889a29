"""Convert stored epics and stories into exportable records."""

from ..errors import NotFound
from ..lifecycle.service import load_request
from ..models import Epic, FeatureRequest, UserStory
from ..persistence.store import InMemoryStore
from .models import PRIORITY_BANDS, ExportableEpic, ExportableStory, ExportOptions


def priority_band(rank: int, total: int) -> str:
    """Band for the story at 0-based ``rank`` among ``total`` stories."""
    if total <= 0:
        return "medium"
    index = min(rank * len(PRIORITY_BANDS) // total, len(PRIORITY_BANDS) - 1)
    return PRIORITY_BANDS[index]


def to_exportable_epic(epic: Epic, request: FeatureRequest | None = None) -> ExportableEpic:
    return ExportableEpic(
        title=epic.title,
        description=epic.description or "",
        goals=list(epic.goals),
        success_criteria=list(epic.success_criteria),
        technical_notes=epic.technical_notes,
        complexity=request.complexity.value if request and request.complexity else None,
        external_key=epic.external_key,
    )


def to_exportable_stories(
    stories: list[UserStory],
    options: ExportOptions | None = None,
    tags: list[str] | None = None,
) -> list[ExportableStory]:
    """
    Normalize stories for export.

    Stories are ranked by (priority, order); IDs are assigned in that order
    and the rank decides the high/medium/low band.

    Args:
        stories: Stories of one epic
        options: Export options (ID prefix)
        tags: Request tags copied onto every story as labels
    """
    options = options or ExportOptions()
    ranked = sorted(stories, key=lambda s: (s.priority, s.order))
    return [
        ExportableStory(
            id=f"{options.story_id_prefix}-{i + 1:03d}",
            title=story.title,
            description=story.narrative,
            acceptance_criteria=list(story.acceptance_criteria),
            priority=story.priority,
            band=priority_band(i, len(ranked)),
            order=story.order,
            story_points=story.story_points,
            technical_notes=story.technical_notes,
            labels=list(tags or []),
            external_key=story.external_key,
        )
        for i, story in enumerate(ranked)
    ]


def load_epic_export(
    store: InMemoryStore,
    request_id: str,
    organization_id: str,
    options: ExportOptions | None = None,
) -> tuple[ExportableEpic, list[ExportableStory]]:
    """
    Load a request's epic and stories ready for an exporter.

    Raises:
        NotFound: If the request is outside the organization or has no epic
    """
    request = load_request(store, request_id, organization_id)
    epic = store.get_epic_for_request(request.id)
    if epic is None:
        raise NotFound("No epic found for this request")
    stories = to_exportable_stories(store.list_stories(epic.id), options, tags=request.tags)
    return to_exportable_epic(epic, request), stories


def total_points(stories: list[ExportableStory]) -> int:
    return sum(s.story_points or 0 for s in stories)
