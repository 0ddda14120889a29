"""Agent tool contracts, one catalogue per pipeline stage."""

from ...config import PipelineStage
from .assessment import ASSESSMENT_TOOLS
from .base import ToolContext, ToolDefinition, ToolInput, error_payload
from .intake import INTAKE_TOOLS
from .output import OUTPUT_TOOLS

STAGE_TOOLS: dict[PipelineStage, tuple[ToolDefinition, ...]] = {
    PipelineStage.INTAKE: INTAKE_TOOLS,
    PipelineStage.ASSESSMENT: ASSESSMENT_TOOLS,
    PipelineStage.OUTPUT: OUTPUT_TOOLS,
    PipelineStage.NONE: (),
}


def tools_for_stage(stage: PipelineStage) -> tuple[ToolDefinition, ...]:
    """Tool catalogue exposed to the agent in ``stage``."""
    return STAGE_TOOLS[stage]


__all__ = [
    "ASSESSMENT_TOOLS",
    "INTAKE_TOOLS",
    "OUTPUT_TOOLS",
    "STAGE_TOOLS",
    "ToolContext",
    "ToolDefinition",
    "ToolInput",
    "error_payload",
    "tools_for_stage",
]
