"""Intake stage tools.

The intake agent interviews the requester section by section. It saves each
section with ``save_intake_progress``, checks coverage with
``check_quality_score``, looks for duplicates with ``get_similar_requests``
and finally hands over to assessment with ``mark_intake_complete``, the only
tool that performs INTAKE_IN_PROGRESS -> PENDING_ASSESSMENT.
"""

import logging
import re
from typing import Any

from pydantic import Field, field_validator

from ...config import INTAKE_SECTIONS, SIMILAR_REQUESTS_LIMIT, PipelineStage, RequestStatus
from ...scoring import round_half_up
from .base import EmptyInput, ToolContext, ToolDefinition, ToolInput, request_summary

logger = logging.getLogger(__name__)


# =============================================================================
# Input Models
# =============================================================================


class SaveIntakeProgressInput(ToolInput):
    section: str = Field(
        description="The intake section being saved",
        json_schema_extra={"enum": list(INTAKE_SECTIONS)},
    )
    data: dict[str, Any] = Field(
        description="Key-value pairs of gathered information for this section"
    )
    completeness: float = Field(ge=0, le=100, description="How complete this section is, 0-100")

    @field_validator("section")
    @classmethod
    def _known_section(cls, value: str) -> str:
        if value not in INTAKE_SECTIONS:
            raise ValueError(f"section must be one of: {', '.join(INTAKE_SECTIONS)}")
        return value


class MarkIntakeCompleteInput(ToolInput):
    summary: str = Field(
        min_length=1,
        description=(
            "A concise summary of the entire feature request based on all gathered information"
        ),
    )


class GetSimilarRequestsInput(ToolInput):
    keywords: str = Field(
        min_length=1,
        description="Keywords to search for in existing feature request titles and summaries",
    )


# =============================================================================
# Quality and Similarity
# =============================================================================


def compute_quality(intake_data: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Share of intake sections with at least one recorded fact.

    Returns:
        Dict with score (0-100), filledSections, missingSections, totalSections
    """
    filled = [s for s in INTAKE_SECTIONS if intake_data.get(s)]
    missing = [s for s in INTAKE_SECTIONS if not intake_data.get(s)]
    score = round_half_up(len(filled) * 100 / len(INTAKE_SECTIONS))
    return {
        "score": score,
        "filledSections": filled,
        "missingSections": missing,
        "totalSections": len(INTAKE_SECTIONS),
    }


def split_keywords(keywords: str) -> list[str]:
    """Split a free-text keyword query on whitespace and commas, lowercased, deduplicated."""
    seen: list[str] = []
    for word in re.split(r"[\s,]+", keywords.lower()):
        if word and word not in seen:
            seen.append(word)
    return seen


def relevance(text: str, keywords: list[str]) -> int:
    """Number of keywords contained in ``text`` (case-insensitive)."""
    haystack = text.lower()
    return sum(1 for k in keywords if k in haystack)


# =============================================================================
# Handlers
# =============================================================================


def save_intake_progress(ctx: ToolContext, params: SaveIntakeProgressInput) -> dict[str, Any]:
    intake_data = dict(ctx.request.intake_data)
    intake_data[params.section] = {**params.data, "completeness": params.completeness}
    ctx.update_request(intake_data=intake_data)
    return {"saved": True, "section": params.section, "completeness": params.completeness}


def check_quality_score(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    quality = compute_quality(ctx.request.intake_data)
    ctx.update_request(quality_score=quality["score"])
    return quality


def mark_intake_complete(ctx: ToolContext, params: MarkIntakeCompleteInput) -> dict[str, Any]:
    ctx.update_request(summary=params.summary, intake_complete=True)
    return {"completed": True, "nextStatus": RequestStatus.PENDING_ASSESSMENT.value}


def get_similar_requests(ctx: ToolContext, params: GetSimilarRequestsInput) -> dict[str, Any]:
    keywords = split_keywords(params.keywords)
    scored = []
    for candidate in ctx.store.list_requests(ctx.organization_id):
        if candidate.id == ctx.request_id:
            continue
        score = relevance(f"{candidate.title} {candidate.summary or ''}", keywords)
        if score > 0:
            scored.append((score, candidate))

    # list_requests is newest first and sort is stable, so ties stay newest first
    scored.sort(key=lambda pair: pair[0], reverse=True)
    matches = [
        request_summary(r, "id", "title", "summary", "status", "priorityScore")
        for _, r in scored[:SIMILAR_REQUESTS_LIMIT]
    ]
    logger.debug(f"Similar requests for {ctx.request_id} ({keywords}): {len(matches)} matches")
    return {"count": len(matches), "matches": matches}


# =============================================================================
# Tool Catalogue
# =============================================================================

INTAKE_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="save_intake_progress",
        description=(
            "Save gathered information for a section of the feature request intake. "
            "Call this after collecting enough detail for a section."
        ),
        stage=PipelineStage.INTAKE,
        input_model=SaveIntakeProgressInput,
        handler=save_intake_progress,
    ),
    ToolDefinition(
        name="check_quality_score",
        description=(
            "Calculate the overall quality and completeness score of the intake based on "
            "which sections have been filled in. Call this periodically to assess progress."
        ),
        stage=PipelineStage.INTAKE,
        input_model=EmptyInput,
        handler=check_quality_score,
    ),
    ToolDefinition(
        name="mark_intake_complete",
        description=(
            "Mark the feature request intake as complete. Call this when the stakeholder "
            "confirms they are done providing information."
        ),
        stage=PipelineStage.INTAKE,
        input_model=MarkIntakeCompleteInput,
        handler=mark_intake_complete,
        status_effect=(RequestStatus.INTAKE_IN_PROGRESS, RequestStatus.PENDING_ASSESSMENT),
    ),
    ToolDefinition(
        name="get_similar_requests",
        description=(
            "Search for existing feature requests that may be similar or related based on "
            "keywords. Use this to check for duplicates."
        ),
        stage=PipelineStage.INTAKE,
        input_model=GetSimilarRequestsInput,
        handler=get_similar_requests,
        read_only=True,
    ),
)
