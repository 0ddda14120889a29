"""Logging and OpenTelemetry tracing for intakeflow.

Strands traces agent, model and tool calls automatically; this package adds
pipeline-stage and orchestrated-tool spans on top.

Usage:
    from intakeflow.telemetry import init_telemetry

    init_telemetry()

Environment Variables:
    LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR) - default: INFO
    OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint - default: http://localhost:4317
    OTEL_SERVICE_NAME: Service name for traces - default: intakeflow
    OTEL_TRACES_EXPORTER: Exporter type (otlp, console, none) - default: otlp
    OTEL_SDK_DISABLED: Disable all tracing - default: false
    INTAKEFLOW_DEPLOYMENT: Added to traces as deployment.environment - default: unset
"""

from .config import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    load_environment,
    setup_logging,
    shutdown_telemetry,
)
from .spans import get_tracer, pipeline_span, record_error, tool_span

__all__ = [
    "ExporterType",
    "TelemetryConfig",
    "get_tracer",
    "init_telemetry",
    "is_telemetry_enabled",
    "load_environment",
    "pipeline_span",
    "record_error",
    "setup_logging",
    "shutdown_telemetry",
    "tool_span",
]
