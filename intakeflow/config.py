"""Centralized configuration for intakeflow.

This module provides a single source of truth for all configuration constants,
eliminating hardcoded values scattered across the codebase.

Design Principles:
- Enums for every wire-level value (statuses, decisions, complexity, roles)
- Timeout and token configurations in one place
- Scoring defaults and intake checklist defined declaratively
- Agent configurations per pipeline stage
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# =============================================================================
# Enums for Type Safety
# =============================================================================


class RequestStatus(Enum):
    """Lifecycle status of a feature request.

    The string values are a wire contract and must not change.
    """

    DRAFT = "DRAFT"
    INTAKE_IN_PROGRESS = "INTAKE_IN_PROGRESS"
    PENDING_ASSESSMENT = "PENDING_ASSESSMENT"
    UNDER_REVIEW = "UNDER_REVIEW"
    NEEDS_INFO = "NEEDS_INFO"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DEFERRED = "DEFERRED"
    IN_BACKLOG = "IN_BACKLOG"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid status values as strings."""
        return [status.value for status in cls]


class DecisionType(Enum):
    """Reviewer judgment on a request."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"
    DEFER = "DEFER"
    REQUEST_INFO = "REQUEST_INFO"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid decision values as strings."""
        return [decision.value for decision in cls]


class DecisionOutcome(Enum):
    """Realized outcome of a decision, recorded after the fact."""

    CORRECT = "CORRECT"
    PARTIALLY_CORRECT = "PARTIALLY_CORRECT"
    INCORRECT = "INCORRECT"
    PENDING = "PENDING"


class Complexity(Enum):
    """T-shirt size effort classification."""

    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def rated(cls) -> list["Complexity"]:
        """Sizes an assessment may assign (everything except UNKNOWN)."""
        return [c for c in cls if c is not cls.UNKNOWN]


class UserRole(Enum):
    """Organization role, totally ordered by ``ROLE_LEVELS``."""

    STAKEHOLDER = "STAKEHOLDER"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"


ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.STAKEHOLDER: 0,
    UserRole.REVIEWER: 1,
    UserRole.ADMIN: 2,
}


class ScoringFramework(Enum):
    """Prioritization framework an organization has configured."""

    RICE = "RICE"
    WSJF = "WSJF"
    CUSTOM = "CUSTOM"


class PipelineStage(Enum):
    """Agent pipeline stage, derived from request status."""

    INTAKE = "INTAKE"
    ASSESSMENT = "ASSESSMENT"
    OUTPUT = "OUTPUT"
    NONE = "NONE"


class NotificationType(Enum):
    """Kinds of notification the lifecycle emits."""

    STATUS_CHANGED = "STATUS_CHANGED"
    DECISION_MADE = "DECISION_MADE"
    ASSESSMENT_COMPLETE = "ASSESSMENT_COMPLETE"
    REVIEW_NEEDED = "REVIEW_NEEDED"


class ModelTier(Enum):
    """Model tier for cost/quality routing."""

    HEAVY = "heavy"  # Assessment and story generation
    LIGHT = "light"  # Conversational intake


# =============================================================================
# Timeout Configuration
# =============================================================================


@dataclass(frozen=True)
class TimeoutConfig:
    """Timeout configuration for model calls."""

    read_timeout: float
    connect_timeout: float
    streaming: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for function kwargs."""
        return {
            "read_timeout": self.read_timeout,
            "connect_timeout": self.connect_timeout,
            "streaming": self.streaming,
        }


TIMEOUT_STANDARD = TimeoutConfig(read_timeout=300.0, connect_timeout=60.0)
TIMEOUT_EXTENDED = TimeoutConfig(read_timeout=600.0, connect_timeout=60.0)

# Upper bound for a single tool invocation (persistence write or
# third-party read). A timeout counts as a tool-execution failure.
TOOL_TIMEOUT_SECONDS = float(os.getenv("INTAKEFLOW_TOOL_TIMEOUT", "30"))

# Timeout for outbound HTTP calls to GitHub, Jira, Linear and Slack
HTTP_TIMEOUT_SECONDS = 30.0


# =============================================================================
# Token Limits
# =============================================================================

# Conversational intake turns are short
TOKENS_INTAKE = 1000

# Assessment writes a structured breakdown into assessmentData
TOKENS_ASSESSMENT = 4000

# Story generation may emit 15+ stories for XL requests
TOKENS_OUTPUT = 8000


# =============================================================================
# Scoring Defaults
# =============================================================================

DEFAULT_WEIGHTS: dict[str, float] = {
    "business": 0.4,
    "technical": 0.3,
    "risk": 0.3,
}

DEFAULT_THRESHOLDS: dict[str, int] = {
    "highPriority": 75,
    "mediumPriority": 50,
}

# Tolerance when checking that scoring weights sum to 1.0
WEIGHT_SUM_TOLERANCE = 0.001


# =============================================================================
# Intake Checklist
# =============================================================================

# Fixed checklist the quality score is computed over. Order matters: it is
# the order sections are reported back to the agent.
INTAKE_SECTIONS: tuple[str, ...] = (
    "problem_statement",
    "target_users",
    "proposed_solution",
    "business_value",
    "success_metrics",
    "urgency_timeline",
    "constraints",
)

# Quality score at which the intake agent suggests wrapping up
INTAKE_WRAP_UP_SCORE = 75


# =============================================================================
# Output Policy
# =============================================================================

# Expected story count per complexity rating (inclusive bounds, None = open)
EXPECTED_STORY_COUNTS: dict[Complexity, tuple[int, int | None]] = {
    Complexity.XS: (1, 2),
    Complexity.S: (2, 4),
    Complexity.M: (4, 8),
    Complexity.L: (8, 15),
    Complexity.XL: (15, None),
}

# Fibonacci scale accepted for story points
STORY_POINT_SCALE: tuple[int, ...] = (1, 2, 3, 5, 8, 13)


# =============================================================================
# Read-only Tool Limits
# =============================================================================

SIMILAR_REQUESTS_LIMIT = 5
BACKLOG_CONTEXT_LIMIT = 10
HISTORICAL_ESTIMATES_LIMIT = 10
CODEBASE_IMPACT_MAX_FILES = 25

# Statuses that make up the "current backlog" seen by the assessment agent
BACKLOG_STATUSES: tuple[RequestStatus, ...] = (
    RequestStatus.IN_BACKLOG,
    RequestStatus.IN_PROGRESS,
    RequestStatus.APPROVED,
)


# =============================================================================
# Agent Configuration
# =============================================================================


@dataclass
class AgentConfig:
    """Configuration for a pipeline stage agent.

    Attributes:
        name: Agent name (used for logging and identification)
        prompt_key: Prompt file stem under agents/prompts/
        max_tokens: Maximum tokens for response generation
        timeout_config: Timeout configuration for model calls
        model_tier: Model tier for cost/quality routing
        max_tool_steps: Upper bound on tool calls in one agent turn
    """

    name: str
    prompt_key: str
    max_tokens: int = TOKENS_INTAKE
    timeout_config: TimeoutConfig = field(default_factory=lambda: TIMEOUT_STANDARD)
    model_tier: ModelTier = ModelTier.LIGHT
    max_tool_steps: int = 5


AGENT_CONFIGS: dict[PipelineStage, AgentConfig] = {
    PipelineStage.INTAKE: AgentConfig(
        name="intake_agent",
        prompt_key="intake",
        max_tokens=TOKENS_INTAKE,
        model_tier=ModelTier.LIGHT,
    ),
    PipelineStage.ASSESSMENT: AgentConfig(
        name="assessment_agent",
        prompt_key="assessment",
        max_tokens=TOKENS_ASSESSMENT,
        timeout_config=TIMEOUT_EXTENDED,
        model_tier=ModelTier.HEAVY,
    ),
    PipelineStage.OUTPUT: AgentConfig(
        name="output_agent",
        prompt_key="output",
        max_tokens=TOKENS_OUTPUT,
        timeout_config=TIMEOUT_EXTENDED,
        model_tier=ModelTier.HEAVY,
        # One epic plus up to ~20 stories and two context reads
        max_tool_steps=25,
    ),
}
