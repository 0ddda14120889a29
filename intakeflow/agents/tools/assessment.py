"""Assessment stage tools.

Four read tools give the assessment agent context (scoring configuration,
current backlog, historical estimates, codebase impact). ``save_assessment``
persists the scores and is the only tool that performs
PENDING_ASSESSMENT -> UNDER_REVIEW.

``priorityScore`` is assigned by the agent under the organization's
framework. ``save_assessment`` also records the weighted composite and the
priority label so reviewers can compare the two.
"""

import logging
from collections import defaultdict
from typing import Any, Literal

from pydantic import Field

from ...config import (
    BACKLOG_CONTEXT_LIMIT,
    BACKLOG_STATUSES,
    CODEBASE_IMPACT_MAX_FILES,
    HISTORICAL_ESTIMATES_LIMIT,
    Complexity,
    PipelineStage,
    RequestStatus,
)
from ...errors import ExternalFailure
from ...scoring import calculate_weighted_score, priority_label, resolve_config
from .base import EmptyInput, ToolContext, ToolDefinition, ToolInput, request_summary
from .intake import split_keywords

logger = logging.getLogger(__name__)

RatedComplexity = Literal["XS", "S", "M", "L", "XL"]


# =============================================================================
# Input Models
# =============================================================================


class AnalyzeCodebaseImpactInput(ToolInput):
    keywords: list[str] = Field(
        min_length=1,
        description="Domain terms to match against file paths (e.g. 'billing', 'export')",
    )


class SaveAssessmentInput(ToolInput):
    business_score: float = Field(alias="businessScore", ge=0, le=100)
    technical_score: float = Field(alias="technicalScore", ge=0, le=100)
    risk_score: float = Field(alias="riskScore", ge=0, le=100)
    priority_score: float = Field(alias="priorityScore", ge=0, le=100)
    complexity: RatedComplexity
    assessment_data: dict[str, Any] = Field(
        alias="assessmentData",
        description=(
            "Full assessment breakdown including executive_summary, rationale, risks, "
            "recommendations"
        ),
    )


# =============================================================================
# Handlers
# =============================================================================


def get_organization_context(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    organization = ctx.store.get_organization(ctx.organization_id)
    return resolve_config(organization=organization).to_payload()


def get_current_backlog(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    rows = ctx.store.list_requests(ctx.organization_id, statuses=BACKLOG_STATUSES)
    # Priority descending, unscored last
    rows.sort(key=lambda r: (r.priority_score is None, -(r.priority_score or 0)))
    items = [
        request_summary(
            r,
            "id",
            "title",
            "summary",
            "status",
            "priorityScore",
            "businessScore",
            "technicalScore",
            "riskScore",
            "complexity",
        )
        for r in rows[:BACKLOG_CONTEXT_LIMIT]
    ]
    return {"count": len(items), "items": items}


def get_historical_estimates(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    rows = ctx.store.list_requests(
        ctx.organization_id, predicate=lambda r: r.assessment_data is not None
    )
    rows.sort(key=lambda r: r.updated_at, reverse=True)
    items = []
    for r in rows[:HISTORICAL_ESTIMATES_LIMIT]:
        item = request_summary(
            r,
            "id",
            "title",
            "complexity",
            "priorityScore",
            "businessScore",
            "technicalScore",
            "riskScore",
        )
        if r.actual_complexity is not None:
            item["actualComplexity"] = r.actual_complexity.value
        items.append(item)
    return {"count": len(items), "items": items}


def analyze_codebase_impact(ctx: ToolContext, params: AnalyzeCodebaseImpactInput) -> dict[str, Any]:
    """Match keywords against the linked repository's file paths.

    Never fails hard: any missing prerequisite or API error is reported as
    ``available: false`` with a reason.
    """
    link = ctx.store.get_repository_link(ctx.organization_id)
    if link is None:
        return {"available": False, "reason": "No repository linked to this organization"}
    if ctx.github is None:
        return {"available": False, "reason": "No GitHub token configured"}

    try:
        tree = ctx.github.get_repo_tree(link.owner, link.repo, link.default_branch)
    except ExternalFailure as e:
        logger.warning(f"Codebase impact unavailable for {link.full_name}: {e}")
        return {"available": False, "reason": str(e)}
    except Exception as e:
        logger.warning(f"Codebase impact lookup for {link.full_name} failed unexpectedly: {e!r}")
        return {"available": False, "reason": f"Repository lookup failed: {e}"}

    keywords = [k for raw in params.keywords for k in split_keywords(raw)]
    matched = [entry.path for entry in tree if any(k in entry.path.lower() for k in keywords)]

    areas: dict[str, int] = defaultdict(int)
    for path in matched:
        area = path.split("/", 1)[0] if "/" in path else "(root)"
        areas[area] += 1

    return {
        "available": True,
        "repository": link.full_name,
        "keywords": keywords,
        "totalFiles": len(tree),
        "matchedFileCount": len(matched),
        "matchedFiles": matched[:CODEBASE_IMPACT_MAX_FILES],
        "affectedAreas": [
            {"area": area, "files": count}
            for area, count in sorted(areas.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
    }


def save_assessment(ctx: ToolContext, params: SaveAssessmentInput) -> dict[str, Any]:
    organization = ctx.store.get_organization(ctx.organization_id)
    config = resolve_config(organization=organization)
    weighted = calculate_weighted_score(
        params.business_score, params.technical_score, params.risk_score, config
    )
    label = priority_label(params.priority_score, config)

    ctx.update_request(
        assessment_data={
            **params.assessment_data,
            "weightedScore": weighted,
            "priorityLabel": label,
        },
        business_score=params.business_score,
        technical_score=params.technical_score,
        risk_score=params.risk_score,
        priority_score=params.priority_score,
        complexity=Complexity(params.complexity),
    )
    return {
        "saved": True,
        "priorityScore": params.priority_score,
        "complexity": params.complexity,
        "status": RequestStatus.UNDER_REVIEW.value,
        "weightedScore": weighted,
        "priorityLabel": label,
    }


# =============================================================================
# Tool Catalogue
# =============================================================================

ASSESSMENT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="get_organization_context",
        description="Retrieve the organization's scoring configuration and priorities",
        stage=PipelineStage.ASSESSMENT,
        input_model=EmptyInput,
        handler=get_organization_context,
        read_only=True,
    ),
    ToolDefinition(
        name="get_current_backlog",
        description="Fetch existing backlog items for comparative analysis",
        stage=PipelineStage.ASSESSMENT,
        input_model=EmptyInput,
        handler=get_current_backlog,
        read_only=True,
    ),
    ToolDefinition(
        name="get_historical_estimates",
        description="Get historical assessment data for calibration",
        stage=PipelineStage.ASSESSMENT,
        input_model=EmptyInput,
        handler=get_historical_estimates,
        read_only=True,
    ),
    ToolDefinition(
        name="analyze_codebase_impact",
        description=(
            "Find files in the organization's linked repository related to the given "
            "keywords, to gauge technical complexity. Returns available=false when no "
            "repository is connected."
        ),
        stage=PipelineStage.ASSESSMENT,
        input_model=AnalyzeCodebaseImpactInput,
        handler=analyze_codebase_impact,
        read_only=True,
    ),
    ToolDefinition(
        name="save_assessment",
        description="Save the complete assessment with scores and rationale",
        stage=PipelineStage.ASSESSMENT,
        input_model=SaveAssessmentInput,
        handler=save_assessment,
        status_effect=(RequestStatus.PENDING_ASSESSMENT, RequestStatus.UNDER_REVIEW),
    ),
)
