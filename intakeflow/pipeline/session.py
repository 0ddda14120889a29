"""Tool-call sessions.

A ``ToolCallSession`` is one agent's run through one pipeline stage of one
request. It pins the stage when opened, feeds every tool call through a Burr
application (see ``actions.py``), and refuses calls once the stage is
complete or the session was cancelled.

Calls are strictly sequential: ``submit`` holds a lock for its whole
duration.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any

from burr.core import Application, ApplicationBuilder, State, default, when
from burr.lifecycle import PostRunStepHook, PreRunStepHook

from ..agents.tools import ToolDefinition
from ..config import AGENT_CONFIGS, PipelineStage
from ..errors import SessionClosed
from ..models import Actor, FeatureRequest
from .actions import awaiting_tool_choice, cancelled, execute_tool, stage_complete
from .orchestrator import AgentPipelineOrchestrator, CancellationToken

logger = logging.getLogger(__name__)


# =============================================================================
# Lifecycle Hooks
# =============================================================================


@dataclass
class SessionStepHook(PostRunStepHook, PreRunStepHook):
    """Debug logging of every state machine step."""

    request_id: str = ""

    def pre_run_step(self, *, action, **kwargs):
        logger.debug(f"[{self.request_id}] -> {action.name}")

    def post_run_step(self, *, action, state, result, **kwargs):
        if action.name == "execute_tool":
            logger.debug(
                f"[{self.request_id}] {action.name} done (steps={state.get('tool_steps')}, "
                f"stage_done={state.get('stage_done')})"
            )


# =============================================================================
# Session
# =============================================================================


def build_session_application(
    orchestrator: AgentPipelineOrchestrator,
    ctx,
    stage: PipelineStage,
    token: CancellationToken,
    max_tool_steps: int | None,
    tracking_project: str | None = None,
) -> Application:
    """Assemble the Burr application driving one stage session."""
    builder = (
        ApplicationBuilder()
        .with_actions(
            awaiting_tool_choice=awaiting_tool_choice.bind(token=token),
            execute_tool=execute_tool.bind(orchestrator=orchestrator, ctx=ctx, token=token),
            stage_complete=stage_complete,
            cancelled=cancelled.bind(token=token),
        )
        .with_transitions(
            ("awaiting_tool_choice", "cancelled", when(cancel_requested=True)),
            ("awaiting_tool_choice", "execute_tool", default),
            ("execute_tool", "cancelled", when(cancel_requested=True)),
            ("execute_tool", "stage_complete", when(stage_done=True)),
            ("execute_tool", "awaiting_tool_choice", default),
        )
        .with_state(
            stage=stage.value,
            request_id=ctx.request_id,
            pending_call=None,
            last_result=None,
            tool_steps=0,
            max_tool_steps=max_tool_steps,
            history=[],
            stage_done=False,
            cancel_requested=False,
            closed=False,
            close_reason=None,
        )
        .with_entrypoint("awaiting_tool_choice")
        .with_hooks(SessionStepHook(request_id=ctx.request_id))
    )

    if tracking_project:
        from burr.tracking import LocalTrackingClient

        builder = builder.with_tracker(LocalTrackingClient(project=tracking_project))

    return builder.build()


class ToolCallSession:
    """One agent's tool-calling run through a single pipeline stage."""

    def __init__(
        self,
        orchestrator: AgentPipelineOrchestrator,
        request_id: str,
        actor: Actor,
        timeout: float | None = None,
        max_tool_steps: int | None = None,
        tracking_project: str | None = None,
    ):
        """Open a session, pinning the request's current stage.

        Args:
            orchestrator: Orchestrator executing the tool calls
            request_id: Request to work on
            actor: Caller the agent acts for
            timeout: Optional deadline for the whole session, in seconds
            max_tool_steps: Tool call budget; defaults to the stage's agent config
            tracking_project: Burr tracking project name, None to disable tracking

        Raises:
            NotFound: If the request is outside the actor's organization
            InvalidTransition: If the request is in no pipeline stage
        """
        self.orchestrator = orchestrator
        self.ctx, self.stage = orchestrator.open_context(request_id, actor)
        self.token = CancellationToken(timeout, label=f"{self.stage.value.lower()} session")
        if max_tool_steps is None:
            max_tool_steps = AGENT_CONFIGS[self.stage].max_tool_steps
        self._lock = threading.Lock()
        self._closed_reason: str | None = None
        self.app = build_session_application(
            orchestrator, self.ctx, self.stage, self.token, max_tool_steps, tracking_project
        )

    @property
    def request(self) -> FeatureRequest:
        return self.ctx.request

    @property
    def tools(self) -> tuple[ToolDefinition, ...]:
        """The pinned stage's tool catalogue."""
        return self.orchestrator.catalogue(self.stage)

    @property
    def state(self) -> State:
        return self.app.state

    @property
    def closed(self) -> bool:
        return self._closed_reason is not None

    @property
    def close_reason(self) -> str | None:
        return self._closed_reason

    def submit(self, tool_name: str, tool_input: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute one tool call and return the payload for the agent.

        Raises:
            SessionClosed: If the session completed or was cancelled
        """
        with self._lock:
            if self.closed:
                raise SessionClosed(
                    f"Session for {self.ctx.request_id} is closed ({self._closed_reason})"
                )

            self.app.step(inputs={"tool_name": tool_name, "tool_input": tool_input or {}})
            if self.app.state["cancel_requested"]:
                self._finish()
                raise SessionClosed(f"Session for {self.ctx.request_id} was cancelled")

            self.app.step()
            result = self.app.state["last_result"]
            if self.app.state["stage_done"] or self.app.state["cancel_requested"]:
                self._finish()
            return result

    def cancel(self, reason: str = "cancelled") -> None:
        """Cancel the session; later calls raise ``SessionClosed``."""
        self.token.cancel(reason)
        with self._lock:
            if not self.closed:
                self._closed_reason = reason
                logger.info(f"{self.stage.value} session for {self.ctx.request_id} cancelled")

    def close(self) -> None:
        """End the session once the agent has finished its turn."""
        with self._lock:
            if not self.closed:
                self._closed_reason = "closed"

    def _finish(self) -> None:
        """Step into the terminal action and record why the session ended."""
        self.app.step()
        self._closed_reason = self.app.state["close_reason"]
