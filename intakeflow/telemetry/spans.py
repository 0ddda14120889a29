"""Pipeline and tool spans.

Span Hierarchy:
    pipeline:<stage> (one per ToolCallSession)
    └── agent_span (created by Strands)
        └── llm_span (created by Strands)
        └── tool:<name> (one per orchestrated tool execution)

Without a configured TracerProvider the OpenTelemetry API hands out
non-recording spans, so these helpers are always safe to call.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Span, StatusCode

logger = logging.getLogger(__name__)

TRACER_NAME = "intakeflow.pipeline"


def get_tracer() -> trace.Tracer:
    """Tracer for intakeflow's custom spans."""
    return trace.get_tracer(TRACER_NAME)


@contextmanager
def pipeline_span(
    stage: str,
    request_id: str,
    organization_id: str | None = None,
    **attributes: Any,
) -> Generator[Span, None, None]:
    """Span covering one stage session of the agent pipeline.

    Args:
        stage: Pipeline stage value (INTAKE, ASSESSMENT, OUTPUT)
        request_id: Feature request the session works on
        organization_id: Owning organization
        **attributes: Additional span attributes
    """
    span_attributes: dict[str, Any] = {
        "pipeline.stage": stage,
        "request.id": request_id,
    }
    if organization_id:
        span_attributes["organization.id"] = organization_id
    span_attributes.update(attributes)

    with get_tracer().start_as_current_span(
        name=f"pipeline:{stage.lower()}", attributes=span_attributes
    ) as span:
        try:
            yield span
            span.set_status(StatusCode.OK)
        except Exception as e:
            record_error(span, e)
            raise


@contextmanager
def tool_span(tool_name: str, request_id: str, stage: str) -> Generator[Span, None, None]:
    """Span covering one orchestrated tool execution.

    The caller sets ``tool.outcome`` (success, rejected, failed, timeout).
    Exceptions escaping the block are recorded on the span.
    """
    with get_tracer().start_as_current_span(
        name=f"tool:{tool_name}",
        attributes={
            "tool.name": tool_name,
            "request.id": request_id,
            "pipeline.stage": stage,
        },
    ) as span:
        try:
            yield span
        except Exception as e:
            record_error(span, e)
            raise


def record_error(span: Span, error: Exception, tool_name: str | None = None) -> None:
    """Record an error on a span with structured attributes.

    Args:
        span: The span to record the error on
        error: The exception that occurred
        tool_name: Tool that failed, if any
    """
    message = str(error)
    span.set_attribute("error", True)
    span.set_attribute("error.type", type(error).__name__)
    span.set_attribute("error.message", message[:500])
    if tool_name:
        span.set_attribute("error.tool", tool_name)
    span.set_attribute("error.retryable", bool(getattr(error, "retryable", False)))
    span.record_exception(error)
    span.set_status(StatusCode.ERROR, message[:100])
