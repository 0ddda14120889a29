"""
Stage agent factory.

Builds the Strands agent for a ``ToolCallSession``: the stage's system
prompt plus the request context, the stage's tools bridged onto the
session, and the model for the stage's tier.

Design Principles:
- All stage agents are created through ``create_stage_agent``
- Agents never touch the store; every effect goes through the session
- ``run_stage`` is the single entry point for one agent turn
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from strands import Agent

from ..config import AGENT_CONFIGS, PipelineStage
from ..models import Actor, FeatureRequest
from ..telemetry import pipeline_span
from .hooks import StageAgentHooks
from .model_provider import create_model
from .prompt_loader import load_prompt
from .tools.bridge import to_agent_tools

logger = logging.getLogger(__name__)


def build_request_context(request: FeatureRequest, stage: PipelineStage) -> str:
    """Request details appended to the stage's system prompt."""
    lines = ["## Feature Request", f"- ID: {request.id}", f"- Title: {request.title}"]
    if request.summary:
        lines.append(f"- Summary: {request.summary}")
    if request.tags:
        lines.append(f"- Tags: {', '.join(request.tags)}")

    if stage == PipelineStage.ASSESSMENT:
        lines += ["", "## Intake Data", "```json", json.dumps(request.intake_data, indent=2), "```"]
    elif stage == PipelineStage.OUTPUT and request.complexity:
        lines.append(f"- Assessed complexity: {request.complexity.value}")

    return "\n".join(lines)


def create_stage_agent(session, model: Any = None, model_id: str | None = None) -> Agent:
    """Create the agent for an open ``ToolCallSession``.

    Args:
        session: Session pinned to the stage the agent works in
        model: Prebuilt Strands model (tests); built from the stage config if None
        model_id: Model ID override when building the model

    Raises:
        PromptLoadError: If the stage prompt cannot be loaded
    """
    config = AGENT_CONFIGS[session.stage]
    context = build_request_context(session.request, session.stage)
    system_prompt = f"{load_prompt(config.prompt_key)}\n\n{context}"

    if model is None:
        model = create_model(
            tier=config.model_tier,
            max_tokens=config.max_tokens,
            timeouts=config.timeout_config,
            model_id=model_id,
        )

    tools = to_agent_tools(session)
    agent = Agent(
        name=config.name,
        system_prompt=system_prompt,
        model=model,
        tools=tools,
        hooks=[StageAgentHooks(session.ctx.request_id, session.stage.value)],
        trace_attributes={
            "request.id": session.ctx.request_id,
            "pipeline.stage": session.stage.value,
        },
        callback_handler=None,
    )

    logger.info(
        f"Created {config.name} with model_tier={config.model_tier.value}, "
        f"max_tokens={config.max_tokens}, tools={[t.tool_name for t in tools]}"
    )
    return agent


@dataclass
class StageRunResult:
    """Outcome of one agent turn in a stage."""

    stage: PipelineStage
    text: str
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    stage_complete: bool = False
    close_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "text": self.text,
            "toolCalls": self.tool_calls,
            "stageComplete": self.stage_complete,
            "closeReason": self.close_reason,
        }


def run_stage(
    orchestrator,
    request_id: str,
    actor: Actor,
    message: str,
    model: Any = None,
    timeout: float | None = None,
    sync=None,
) -> StageRunResult:
    """Run one agent turn against the request's current stage.

    For intake, ``message`` is the stakeholder's latest chat message; for the
    other stages it is the kickoff instruction. When ``sync`` (an
    ``EpicSyncService``) is given and an Output turn leaves an epic behind, it is
    pushed to every tracker configured for auto-sync.
    """
    from ..pipeline.session import ToolCallSession

    session = ToolCallSession(orchestrator, request_id, actor, timeout=timeout)
    with pipeline_span(
        session.stage.value, session.ctx.request_id, session.ctx.organization_id
    ) as span:
        agent = create_stage_agent(session, model=model)
        try:
            response = agent(message)
        finally:
            complete = session.close_reason == "stage_complete"
            session.close()

        span.set_attribute("pipeline.tool_calls", session.state["tool_steps"])
        span.set_attribute("pipeline.stage_complete", complete)

    if (
        sync is not None
        and session.stage == PipelineStage.OUTPUT
        and orchestrator.store.get_epic_for_request(session.ctx.request_id) is not None
    ):
        sync.auto_sync(session.ctx.request_id)

    return StageRunResult(
        stage=session.stage,
        text=str(response),
        tool_calls=list(session.state["history"]),
        stage_complete=complete,
        close_reason=session.close_reason,
    )
