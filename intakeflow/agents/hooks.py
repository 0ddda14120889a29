"""Agent lifecycle hooks for observability.

Provides a HookProvider that logs and times stage agent invocations and
counts the tool calls each agent makes. Injected via agent_factory.py.
Purely observational: the orchestrator owns tool validation and errors.
"""

import logging
import time

from opentelemetry import trace
from strands.hooks import (
    AfterInvocationEvent,
    AfterToolCallEvent,
    BeforeInvocationEvent,
    BeforeToolCallEvent,
    HookProvider,
    HookRegistry,
)

logger = logging.getLogger(__name__)


class StageAgentHooks(HookProvider):
    """Observability hooks for pipeline stage agents."""

    def __init__(self, request_id: str, stage: str):
        self.request_id = request_id
        self.stage = stage
        self._start_time: float | None = None
        self.execution_time: float = 0.0
        self.tool_calls: list[str] = []

    def register_hooks(self, registry: HookRegistry, **kwargs) -> None:
        registry.add_callback(BeforeInvocationEvent, self._on_before_invocation)
        registry.add_callback(AfterInvocationEvent, self._on_after_invocation)
        registry.add_callback(BeforeToolCallEvent, self._on_before_tool)
        registry.add_callback(AfterToolCallEvent, self._on_after_tool)

    def _on_before_invocation(self, event: BeforeInvocationEvent) -> None:
        self._start_time = time.time()
        logger.info(f"{self.stage} agent started for {self.request_id}")

    def _on_after_invocation(self, event: AfterInvocationEvent) -> None:
        self.execution_time = time.time() - (self._start_time or time.time())
        stop_reason = getattr(event.result, "stop_reason", None) if event.result else None
        logger.info(
            f"{self.stage} agent finished for {self.request_id} in {self.execution_time:.2f}s "
            f"({len(self.tool_calls)} tool calls, stop_reason={stop_reason})"
        )

        span = trace.get_current_span()
        span.set_attribute("agent.stage", self.stage)
        span.set_attribute("agent.execution_time_seconds", self.execution_time)
        span.set_attribute("agent.tool_calls", len(self.tool_calls))

    def _on_before_tool(self, event: BeforeToolCallEvent) -> None:
        tool_name = event.tool_use.get("name", "unknown") if event.tool_use else "unknown"
        self.tool_calls.append(tool_name)
        logger.debug(f"{self.stage} agent calling tool: {tool_name}")

    def _on_after_tool(self, event: AfterToolCallEvent) -> None:
        tool_name = event.tool_use.get("name", "unknown") if event.tool_use else "unknown"
        status = event.result.get("status", "unknown") if event.result else "unknown"
        logger.debug(f"{self.stage} agent tool {tool_name} returned {status}")
