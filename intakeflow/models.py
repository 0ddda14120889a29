"""Pydantic models for the request lifecycle.

All persisted entities are plain pydantic models. The store hands out copies,
so mutating a model never changes persisted state; writes go through the
store's update methods.

Field names are snake_case; the agent-facing camelCase wire names are
produced by the tool result builders, not by these models.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import (
    DEFAULT_THRESHOLDS,
    DEFAULT_WEIGHTS,
    WEIGHT_SUM_TOLERANCE,
    Complexity,
    DecisionOutcome,
    DecisionType,
    NotificationType,
    RequestStatus,
    ScoringFramework,
    UserRole,
)


def new_id() -> str:
    """Generate a new entity identifier."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


# =============================================================================
# Scoring Configuration
# =============================================================================


class ScoringWeights(BaseModel):
    """Weights of the three assessment dimensions."""

    business: float = Field(default=DEFAULT_WEIGHTS["business"], ge=0, le=1)
    technical: float = Field(default=DEFAULT_WEIGHTS["technical"], ge=0, le=1)
    risk: float = Field(default=DEFAULT_WEIGHTS["risk"], ge=0, le=1)


class ScoringThresholds(BaseModel):
    """Lower bounds (inclusive) of the High and Medium priority bands."""

    model_config = ConfigDict(populate_by_name=True)

    high_priority: int = Field(default=DEFAULT_THRESHOLDS["highPriority"], alias="highPriority")
    medium_priority: int = Field(
        default=DEFAULT_THRESHOLDS["mediumPriority"], alias="mediumPriority"
    )


class ScoringConfig(BaseModel):
    """Per-organization scoring configuration.

    Weights must sum to 1.0 and thresholds must be ordered within 0 to 100.
    """

    framework: ScoringFramework = ScoringFramework.RICE
    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    thresholds: ScoringThresholds = Field(default_factory=ScoringThresholds)

    @model_validator(mode="after")
    def _check_invariants(self) -> "ScoringConfig":
        total = self.weights.business + self.weights.technical + self.weights.risk
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Scoring weights must sum to 1.0, got {total:.3f}")
        high = self.thresholds.high_priority
        medium = self.thresholds.medium_priority
        if not 0 <= medium <= high <= 100:
            raise ValueError(
                "Thresholds must satisfy 0 <= medium <= high <= 100, "
                f"got medium={medium}, high={high}"
            )
        return self

    def to_payload(self) -> dict[str, Any]:
        """Wire shape shared with the assessment agent."""
        return {
            "framework": self.framework.value,
            "weights": {
                "business": self.weights.business,
                "technical": self.weights.technical,
                "risk": self.weights.risk,
            },
            "thresholds": {
                "highPriority": self.thresholds.high_priority,
                "mediumPriority": self.thresholds.medium_priority,
            },
        }


# =============================================================================
# Organizations and Actors
# =============================================================================


class Organization(BaseModel):
    """Tenant owning requests, members and configuration."""

    id: str = Field(default_factory=new_id)
    name: str
    scoring_config: ScoringConfig | None = None
    settings: dict[str, Any] = Field(default_factory=dict)


class Member(BaseModel):
    """A user's membership and role in an organization."""

    user_id: str
    organization_id: str
    role: UserRole = UserRole.STAKEHOLDER
    name: str | None = None
    email: str | None = None


class Actor(BaseModel):
    """The authenticated caller of a lifecycle operation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    organization_id: str
    role: UserRole


# =============================================================================
# Feature Request
# =============================================================================


class FeatureRequest(BaseModel):
    """The unit tracked through the lifecycle.

    ``version`` increments on every write and backs compare-and-swap updates.
    """

    id: str = Field(default_factory=new_id)
    organization_id: str
    requester_id: str
    title: str
    summary: str | None = None
    status: RequestStatus = RequestStatus.DRAFT

    # Intake stage
    intake_data: dict[str, dict[str, Any]] = Field(default_factory=dict)
    intake_complete: bool = False
    quality_score: int | None = Field(default=None, ge=0, le=100)

    # Assessment stage
    assessment_data: dict[str, Any] | None = None
    business_score: float | None = Field(default=None, ge=0, le=100)
    technical_score: float | None = Field(default=None, ge=0, le=100)
    risk_score: float | None = Field(default=None, ge=0, le=100)
    priority_score: float | None = Field(default=None, ge=0, le=100)
    complexity: Complexity | None = None

    # Calibration (filled post-hoc)
    actual_complexity: Complexity | None = None
    actual_effort_days: float | None = Field(default=None, ge=0)
    lessons_learned: str | None = None

    tags: list[str] = Field(default_factory=list)
    version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_assessed(self) -> bool:
        """True once the assessment stage has persisted its scores."""
        return self.priority_score is not None and self.complexity is not None

    @property
    def complexity_matched(self) -> bool | None:
        """Strict equality of predicted and actual complexity; None until both exist."""
        if self.complexity is None or self.actual_complexity is None:
            return None
        return self.complexity == self.actual_complexity


# =============================================================================
# Decisions and Outcomes
# =============================================================================


class Decision(BaseModel):
    """A reviewer judgment. Immutable except for the outcome fields."""

    id: str = Field(default_factory=new_id)
    request_id: str
    user_id: str
    decision: DecisionType
    rationale: str
    outcome: DecisionOutcome | None = None
    outcome_notes: str | None = None
    outcome_recorded_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("rationale")
    @classmethod
    def _rationale_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("rationale must not be empty")
        return value


class OutcomeEntry(BaseModel):
    """One entry of a decision's append-only outcome log."""

    id: str = Field(default_factory=new_id)
    decision_id: str
    outcome: DecisionOutcome
    notes: str | None = None
    recorded_by: str
    recorded_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Output Artifacts
# =============================================================================


class Epic(BaseModel):
    """Top-level unit of scope generated from an assessed request."""

    id: str = Field(default_factory=new_id)
    request_id: str
    title: str
    description: str | None = None
    goals: list[str] = Field(default_factory=list)
    success_criteria: list[str] = Field(default_factory=list)
    technical_notes: str | None = None
    external_key: str | None = None
    external_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class UserStory(BaseModel):
    """A single INVEST-compliant story under an epic."""

    id: str = Field(default_factory=new_id)
    epic_id: str
    title: str
    as_a: str
    i_want: str
    so_that: str
    acceptance_criteria: list[str] = Field(default_factory=list)
    technical_notes: str | None = None
    priority: int = Field(ge=1)
    story_points: int | None = None
    order: int = 0  # Insertion order within the epic
    external_key: str | None = None
    external_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def narrative(self) -> str:
        """Single-sentence "As a / I want / so that" form."""
        return f"As {self.as_a}, I want {self.i_want}, so that {self.so_that}"


# =============================================================================
# Collaborator Records
# =============================================================================


class Notification(BaseModel):
    """Payload handed to a notification sink."""

    organization_id: str
    user_id: str
    type: NotificationType
    title: str
    message: str
    link: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire shape accepted by notification sinks."""
        payload: dict[str, Any] = {
            "organizationId": self.organization_id,
            "userId": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
        }
        if self.link:
            payload["link"] = self.link
        return payload


class RepositoryLink(BaseModel):
    """Source repository connected to an organization."""

    organization_id: str
    owner: str
    repo: str
    default_branch: str = "main"

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


class Integration(BaseModel):
    """Third-party integration configured for an organization."""

    organization_id: str
    type: str  # JIRA, LINEAR, SLACK, GITHUB
    config: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class SyncLogEntry(BaseModel):
    """Record of one push to an external issue tracker."""

    id: str = Field(default_factory=new_id)
    organization_id: str
    provider: str  # JIRA, LINEAR
    entity_type: str  # EPIC, STORY
    entity_id: str
    external_key: str = ""
    status: str  # SUCCESS, FAILED
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
