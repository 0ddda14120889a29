"""Output stage tools.

The output agent turns an approved, assessed request into one epic and an
ordered list of user stories. None of these tools change status.

``save_epic`` is idempotent per request: a second call returns the existing
epic id with ``alreadyExists: true`` instead of creating a duplicate.
"""

import logging
from typing import Any

from pydantic import Field, field_validator

from ...config import STORY_POINT_SCALE, PipelineStage
from ...errors import NotFound, ValidationError
from ...models import Epic, UserStory
from .base import EmptyInput, ToolContext, ToolDefinition, ToolInput

logger = logging.getLogger(__name__)


# =============================================================================
# Input Models
# =============================================================================


class SaveEpicInput(ToolInput):
    title: str = Field(min_length=1, description="Epic title")
    description: str = Field(description="Detailed epic description")
    goals: list[str] = Field(description="List of epic goals")
    success_criteria: list[str] = Field(
        alias="successCriteria", description="Measurable success criteria"
    )
    technical_notes: str | None = Field(
        default=None, alias="technicalNotes", description="Technical considerations and notes"
    )


class SaveUserStoryInput(ToolInput):
    epic_id: str = Field(alias="epicId", description="The epic ID this story belongs to")
    title: str = Field(min_length=1, description="Short story title")
    as_a: str = Field(alias="asA", description="The user role (As a...)")
    i_want: str = Field(alias="iWant", description="The desired functionality (I want...)")
    so_that: str = Field(alias="soThat", description="The benefit (So that...)")
    acceptance_criteria: list[str] = Field(
        alias="acceptanceCriteria", description="Given/When/Then acceptance criteria"
    )
    technical_notes: str | None = Field(
        default=None, alias="technicalNotes", description="Technical implementation notes"
    )
    priority: int = Field(ge=1, description="Priority order (1 = highest)")
    story_points: int | None = Field(
        default=None, alias="storyPoints", description="Story point estimate (1,2,3,5,8,13)"
    )

    @field_validator("story_points")
    @classmethod
    def _fibonacci(cls, value: int | None) -> int | None:
        if value is not None and value not in STORY_POINT_SCALE:
            raise ValueError(
                f"storyPoints must be one of {', '.join(str(p) for p in STORY_POINT_SCALE)}"
            )
        return value


# =============================================================================
# Handlers
# =============================================================================


def get_intake_data(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    request = ctx.refresh()
    return {
        "title": request.title,
        "summary": request.summary,
        "intakeData": request.intake_data,
        "qualityScore": request.quality_score,
    }


def get_assessment_data(ctx: ToolContext, params: EmptyInput) -> dict[str, Any]:
    request = ctx.refresh()
    return {
        "assessmentData": request.assessment_data,
        "businessScore": request.business_score,
        "technicalScore": request.technical_score,
        "riskScore": request.risk_score,
        "priorityScore": request.priority_score,
        "complexity": request.complexity.value if request.complexity else None,
    }


def save_epic(ctx: ToolContext, params: SaveEpicInput) -> dict[str, Any]:
    existing = ctx.store.get_epic_for_request(ctx.request_id)
    if existing is not None:
        logger.info(f"Epic already exists for {ctx.request_id}: {existing.id}")
        return {"saved": True, "epicId": existing.id, "alreadyExists": True}

    if not ctx.request.is_assessed:
        raise ValidationError("Cannot create an epic before the request has been assessed")

    epic = ctx.store.insert_epic(
        Epic(
            request_id=ctx.request_id,
            title=params.title,
            description=params.description,
            goals=params.goals,
            success_criteria=params.success_criteria,
            technical_notes=params.technical_notes,
        )
    )
    return {"saved": True, "epicId": epic.id}


def save_user_story(ctx: ToolContext, params: SaveUserStoryInput) -> dict[str, Any]:
    epic = ctx.store.get_epic(params.epic_id)
    if epic is None or epic.request_id != ctx.request_id:
        raise NotFound(f"Epic {params.epic_id} not found for this request")

    story = ctx.store.insert_story(
        UserStory(
            epic_id=epic.id,
            title=params.title,
            as_a=params.as_a,
            i_want=params.i_want,
            so_that=params.so_that,
            acceptance_criteria=params.acceptance_criteria,
            technical_notes=params.technical_notes,
            priority=params.priority,
            story_points=params.story_points,
        )
    )
    return {"saved": True, "storyId": story.id, "title": story.title}


# =============================================================================
# Tool Catalogue
# =============================================================================

OUTPUT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="get_intake_data",
        description="Retrieve the intake data and summary for this feature request",
        stage=PipelineStage.OUTPUT,
        input_model=EmptyInput,
        handler=get_intake_data,
        read_only=True,
    ),
    ToolDefinition(
        name="get_assessment_data",
        description="Retrieve the assessment scores and analysis for this feature request",
        stage=PipelineStage.OUTPUT,
        input_model=EmptyInput,
        handler=get_assessment_data,
        read_only=True,
    ),
    ToolDefinition(
        name="save_epic",
        description="Save the generated epic to the database",
        stage=PipelineStage.OUTPUT,
        input_model=SaveEpicInput,
        handler=save_epic,
    ),
    ToolDefinition(
        name="save_user_story",
        description="Save a generated user story to the database",
        stage=PipelineStage.OUTPUT,
        input_model=SaveUserStoryInput,
        handler=save_user_story,
    ),
)
