"""Burr actions of the tool-calling loop.

One stage session is a small state machine:

    awaiting_tool_choice -> execute_tool -> awaiting_tool_choice ...
                                         -> stage_complete
    (either) -> cancelled

Non-serializable collaborators (orchestrator, tool context, cancellation
token) are bound with ``.bind()``; the State only carries plain values.

The @action decorator specifies:
- reads: State keys this action needs to read
- writes: State keys this action will write to
"""

import logging
from typing import Any

from burr.core import State, action

from ..agents.tools import ToolContext
from ..config import PipelineStage
from ..lifecycle.stages import status_in_stage
from .orchestrator import AgentPipelineOrchestrator, CancellationToken

logger = logging.getLogger(__name__)


@action(reads=[], writes=["pending_call", "cancel_requested"])
def awaiting_tool_choice(
    state: State,
    token: CancellationToken,
    tool_name: str,
    tool_input: dict[str, Any] | None = None,
) -> State:
    """Receive the agent's next tool call."""
    return state.update(
        pending_call={"name": tool_name, "input": dict(tool_input or {})},
        cancel_requested=token.cancelled,
    )


@action(
    reads=["pending_call", "stage", "tool_steps", "max_tool_steps"],
    writes=["last_result", "tool_steps", "history", "stage_done", "cancel_requested"],
)
def execute_tool(
    state: State,
    orchestrator: AgentPipelineOrchestrator,
    ctx: ToolContext,
    token: CancellationToken,
) -> State:
    """Run the pending call through the orchestrator."""
    call = state["pending_call"]
    stage = PipelineStage(state["stage"])

    result = orchestrator.execute(ctx, stage, call["name"], call["input"], token)
    steps = state["tool_steps"] + 1
    left_stage = not status_in_stage(ctx.request.status, stage)
    out_of_steps = state["max_tool_steps"] is not None and steps >= state["max_tool_steps"]

    if out_of_steps and not left_stage:
        logger.warning(
            f"{stage.value} session for {ctx.request_id} hit its tool step limit ({steps})"
        )

    return state.update(
        last_result=result,
        tool_steps=steps,
        stage_done=left_stage or out_of_steps,
        cancel_requested=token.cancelled,
    ).append(history={"tool": call["name"], "ok": "error" not in result})


@action(reads=["stage", "tool_steps"], writes=["closed", "close_reason"])
def stage_complete(state: State) -> State:
    """Terminal: the request left the stage or the step budget ran out."""
    logger.info(f"{state['stage']} session complete after {state['tool_steps']} tool calls")
    return state.update(closed=True, close_reason="stage_complete")


@action(reads=["stage"], writes=["closed", "close_reason"])
def cancelled(state: State, token: CancellationToken) -> State:
    """Terminal: the session was cancelled or its deadline passed."""
    reason = token.reason or ("timeout" if token.expired else "cancelled")
    logger.info(f"{state['stage']} session cancelled ({reason})")
    return state.update(closed=True, close_reason=reason)
