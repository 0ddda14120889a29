"""Agent pipeline orchestrator.

Runs agent tool calls against the lifecycle. For every call it:

1. Resolves the tool from the catalogue of the session's pinned stage
2. Re-reads the request and checks its status still belongs to that stage
3. Validates the input against the tool's declared schema (no write on failure)
4. Runs the handler and the declared status side effect as one unit of work,
   in a worker thread bounded by the call's deadline (read-only tools skip
   the unit of work)
5. Notifies on status change once the unit has committed

``execute`` never raises for tool-level failures: the agent receives
``{"error": ..., "errorType": ...}`` instead of a success payload.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..agents.tools import STAGE_TOOLS, ToolContext, ToolDefinition, error_payload
from ..config import TOOL_TIMEOUT_SECONDS, PipelineStage, RequestStatus
from ..errors import (
    IntakeflowError,
    InvalidTransition,
    SessionClosed,
    StageMismatch,
    ToolExecutionError,
    ToolTimeout,
    ValidationError,
)
from ..integrations.github import GitHubClient, get_github_token
from ..lifecycle.service import LifecycleService, load_request, write_status
from ..lifecycle.stages import derive_stage, status_in_stage
from ..models import Actor
from ..notifications import NotificationDispatcher
from ..persistence.store import InMemoryStore
from ..telemetry.spans import tool_span

logger = logging.getLogger(__name__)


# =============================================================================
# Cancellation
# =============================================================================


class CancellationToken:
    """Cooperative cancellation with an optional deadline.

    Checked at every suspension point of a session: before a tool runs and
    just before its unit of work commits.
    """

    def __init__(
        self,
        timeout: float | None = None,
        label: str = "session",
        parent: "CancellationToken | None" = None,
    ):
        self.label = label
        self.parent = parent
        self.reason: str | None = None
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def child(self, timeout: float | None, label: str) -> "CancellationToken":
        """Token for one tool call: cancelled with its parent, never outlives it."""
        token = CancellationToken(timeout, label=label, parent=self)
        parent_remaining = self.remaining()
        if parent_remaining is not None and (
            token._deadline is None or parent_remaining < token.remaining()
        ):
            token._deadline = time.monotonic() + parent_remaining
        return token

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        if self._event.is_set() or self.expired:
            return True
        return self.parent is not None and self.parent.cancelled

    def remaining(self) -> float | None:
        """Seconds left before the deadline, None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            ToolTimeout: If the deadline passed
            SessionClosed: If cancelled explicitly (here or in a parent)
        """
        if self.expired:
            raise ToolTimeout(self.label, "deadline exceeded")
        if self._event.is_set():
            raise SessionClosed(f"{self.label} {self.reason or 'cancelled'}")
        if self.parent is not None:
            self.parent.raise_if_cancelled()


# =============================================================================
# Orchestrator
# =============================================================================


class AgentPipelineOrchestrator:
    """Exposes stage tool sets and executes tool calls against the store."""

    def __init__(
        self,
        store: InMemoryStore,
        dispatcher: NotificationDispatcher | None = None,
        tool_timeout: float | None = TOOL_TIMEOUT_SECONDS,
        github: GitHubClient | None = None,
    ):
        self.store = store
        self.dispatcher = dispatcher or NotificationDispatcher(store)
        self.lifecycle = LifecycleService(store, self.dispatcher)
        self.tool_timeout = tool_timeout
        self._github = github

    # -------------------------------------------------------------------------
    # Stage and catalogue
    # -------------------------------------------------------------------------

    def current_stage(self, request_id: str, actor: Actor) -> PipelineStage:
        request = load_request(self.store, request_id, actor.organization_id)
        has_epic = self.store.get_epic_for_request(request.id) is not None
        return derive_stage(request.status, has_epic)

    def catalogue(self, stage: PipelineStage) -> tuple[ToolDefinition, ...]:
        """Tools the agent may call in ``stage``."""
        return STAGE_TOOLS[stage]

    def open_context(self, request_id: str, actor: Actor) -> tuple[ToolContext, PipelineStage]:
        """Pin the stage for a new session and build its tool context.

        Opening intake on a DRAFT request starts intake on the requester's
        behalf.

        Raises:
            NotFound: If the request is outside the actor's organization
            InvalidTransition: If the request is in no pipeline stage
        """
        request = load_request(self.store, request_id, actor.organization_id)
        has_epic = self.store.get_epic_for_request(request.id) is not None
        stage = derive_stage(request.status, has_epic)
        if stage == PipelineStage.NONE:
            raise InvalidTransition(
                request.status.value,
                PipelineStage.NONE.value,
                f"Request {request.id} in status {request.status.value} "
                "has no active pipeline stage",
            )

        if request.status == RequestStatus.DRAFT:
            request = self.lifecycle.start_intake(request, actor)

        ctx = ToolContext(
            store=self.store,
            request=request,
            actor=actor,
            github=self._resolve_github(request.organization_id),
        )
        logger.info(f"Opened {stage.value} context for {request.id} ({request.status.value})")
        return ctx, stage

    def _resolve_github(self, organization_id: str) -> GitHubClient | None:
        if self._github is not None:
            return self._github
        integration = self.store.get_integration(organization_id, "GITHUB")
        token = (integration.config.get("token") if integration else None) or get_github_token()
        return GitHubClient(token) if token else None

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute(
        self,
        ctx: ToolContext,
        stage: PipelineStage,
        tool_name: str,
        tool_input: dict[str, Any] | None,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Run one tool call and return the payload the agent sees."""
        with tool_span(tool_name, ctx.request_id, stage.value) as span:
            try:
                result = self.run_tool(ctx, stage, tool_name, tool_input, token)
            except IntakeflowError as e:
                if isinstance(e, ToolTimeout):
                    outcome = "timeout"
                elif isinstance(e, ToolExecutionError):
                    outcome = "failed"
                else:
                    outcome = "rejected"
                span.set_attribute("tool.outcome", outcome)
                logger.warning(f"Tool {tool_name} {outcome} for {ctx.request_id}: {e}")
                return error_payload(e)
            span.set_attribute("tool.outcome", "success")
            return result

    def run_tool(
        self,
        ctx: ToolContext,
        stage: PipelineStage,
        tool_name: str,
        tool_input: dict[str, Any] | None,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """Run one tool call, raising typed errors.

        Raises:
            StageMismatch: Tool not in the pinned stage, or request left the stage
            ValidationError: Input failed the tool's schema
            InvalidTransition: Status side effect not applicable from current status
            ToolExecutionError: The handler or its write failed
            ToolTimeout: The call exceeded its deadline
            SessionClosed: The session was cancelled
        """
        token = token or CancellationToken()
        token.raise_if_cancelled()

        definition = self._resolve(stage, tool_name, ctx)
        request = ctx.refresh()
        if not status_in_stage(request.status, stage):
            raise StageMismatch(
                request.status.value,
                stage.value,
                f"Request is {request.status.value}; {stage.value} tools are no longer available",
            )

        params = self._validate(definition, tool_input)

        if definition.status_effect is not None:
            source, target = definition.status_effect
            if request.status != source:
                raise InvalidTransition(request.status.value, target.value)

        call_token = token.child(self.tool_timeout, label=tool_name)
        logger.info(f"Tool {tool_name} executing for {request.id}")
        result, previous = self._run_bounded(definition, ctx, params, call_token)

        if definition.status_effect is not None:
            self._after_status_change(ctx, previous)
        return result

    def _resolve(self, stage: PipelineStage, tool_name: str, ctx: ToolContext) -> ToolDefinition:
        for definition in STAGE_TOOLS[stage]:
            if definition.name == tool_name:
                return definition
        for other_stage, definitions in STAGE_TOOLS.items():
            if any(d.name == tool_name for d in definitions):
                raise StageMismatch(
                    ctx.request.status.value,
                    other_stage.value,
                    f"Tool '{tool_name}' belongs to the {other_stage.value} stage, "
                    f"not {stage.value}",
                )
        raise ValidationError(f"Unknown tool '{tool_name}'")

    def _validate(self, definition: ToolDefinition, tool_input: dict[str, Any] | None):
        try:
            return definition.input_model.model_validate(tool_input or {})
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(
                f"Invalid input for {definition.name}: {problems}",
                errors=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
            ) from e

    def _run_bounded(
        self,
        definition: ToolDefinition,
        ctx: ToolContext,
        params: Any,
        token: CancellationToken,
    ) -> tuple[dict[str, Any], RequestStatus]:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"tool-{definition.name}")
        try:
            future = executor.submit(self._run_unit, definition, ctx, params, token)
            try:
                return future.result(timeout=token.remaining())
            except FuturesTimeout:
                token.cancel("timed out")
                raise ToolTimeout(definition.name, "exceeded its deadline") from None
        finally:
            executor.shutdown(wait=False)

    def _run_unit(
        self,
        definition: ToolDefinition,
        ctx: ToolContext,
        params: Any,
        token: CancellationToken,
    ) -> tuple[dict[str, Any], RequestStatus]:
        """Handler write plus status side effect, committed together.

        Read-only tools run outside the unit of work so a slow lookup never
        holds the store lock past its deadline.
        """
        previous = ctx.request.status
        try:
            if definition.read_only:
                return definition.handler(ctx, params), previous
            with self.store.transaction(before_commit=token.raise_if_cancelled):
                result = definition.handler(ctx, params)
                if definition.status_effect is not None:
                    ctx.request = write_status(self.store, ctx.request, definition.status_effect[1])
        except IntakeflowError:
            raise
        except Exception as e:
            raise ToolExecutionError(definition.name, str(e)) from e
        return result, previous

    def _after_status_change(self, ctx: ToolContext, previous: RequestStatus) -> None:
        self.dispatcher.status_changed(ctx.request, previous, ctx.actor)
        if ctx.request.status == RequestStatus.UNDER_REVIEW:
            self.dispatcher.assessment_complete(ctx.request)
