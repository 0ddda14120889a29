"""Tests for logging setup, telemetry config and pipeline/tool spans."""

import logging
import os

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from intakeflow.config import RequestStatus
from intakeflow.errors import ConflictError, ValidationError
from intakeflow.telemetry import (
    ExporterType,
    TelemetryConfig,
    init_telemetry,
    is_telemetry_enabled,
    load_environment,
    pipeline_span,
    record_error,
    setup_logging,
    shutdown_telemetry,
    tool_span,
)
from intakeflow.telemetry import spans as spans_module


@pytest.fixture
def exporter(monkeypatch):
    """Route intakeflow spans to an in-memory exporter."""
    memory = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(memory))
    monkeypatch.setattr(spans_module, "get_tracer", lambda: provider.get_tracer("test"))
    return memory


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    for name in ("strands", "intakeflow", "httpx"):
        logging.getLogger(name).setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------


class TestPipelineSpan:
    def test_attributes_and_ok_status(self, exporter):
        with pipeline_span("INTAKE", "req-1", "org-1", **{"pipeline.session": "s1"}) as span:
            span.set_attribute("pipeline.tool_calls", 2)

        [finished] = exporter.get_finished_spans()
        assert finished.name == "pipeline:intake"
        assert finished.attributes["pipeline.stage"] == "INTAKE"
        assert finished.attributes["request.id"] == "req-1"
        assert finished.attributes["organization.id"] == "org-1"
        assert finished.attributes["pipeline.session"] == "s1"
        assert finished.attributes["pipeline.tool_calls"] == 2
        assert finished.status.status_code is StatusCode.OK

    def test_organization_optional(self, exporter):
        with pipeline_span("OUTPUT", "req-1"):
            pass
        [finished] = exporter.get_finished_spans()
        assert "organization.id" not in finished.attributes

    def test_error_recorded_and_reraised(self, exporter):
        with pytest.raises(ValidationError):
            with pipeline_span("ASSESSMENT", "req-1"):
                raise ValidationError("businessScore out of range")

        [finished] = exporter.get_finished_spans()
        assert finished.status.status_code is StatusCode.ERROR
        assert finished.attributes["error.type"] == "ValidationError"
        assert finished.attributes["error.retryable"] is False


class TestToolSpan:
    def test_tool_span(self, exporter):
        with tool_span("save_epic", "req-1", "OUTPUT") as span:
            span.set_attribute("tool.outcome", "success")

        [finished] = exporter.get_finished_spans()
        assert finished.name == "tool:save_epic"
        assert finished.attributes["tool.name"] == "save_epic"
        assert finished.attributes["tool.outcome"] == "success"

    def test_orchestrator_marks_outcome(self, exporter, orchestrator, make_request, stakeholder):
        request = make_request(status=RequestStatus.INTAKE_IN_PROGRESS)
        ctx, stage = orchestrator.open_context(request.id, stakeholder)

        orchestrator.execute(ctx, stage, "check_quality_score", {})
        orchestrator.execute(ctx, stage, "mark_intake_complete", {})

        outcomes = [s.attributes["tool.outcome"] for s in exporter.get_finished_spans()]
        assert outcomes == ["success", "rejected"]


class TestRecordError:
    def test_retryable_and_tool(self, exporter):
        with spans_module.get_tracer().start_as_current_span("op") as span:
            record_error(span, ConflictError("req-1", 2, 3), tool_name="save_assessment")

        [finished] = exporter.get_finished_spans()
        assert finished.attributes["error"] is True
        assert finished.attributes["error.tool"] == "save_assessment"
        assert finished.attributes["error.retryable"] is True
        assert finished.events[0].name == "exception"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestTelemetryConfig:
    def test_defaults(self, monkeypatch):
        for name in (
            "LOG_LEVEL",
            "OTEL_SERVICE_NAME",
            "OTEL_EXPORTER_OTLP_ENDPOINT",
            "OTEL_TRACES_EXPORTER",
            "OTEL_SDK_DISABLED",
        ):
            monkeypatch.delenv(name, raising=False)

        config = TelemetryConfig.from_env()

        assert config.log_level == "INFO"
        assert config.service_name == "intakeflow"
        assert config.otlp_endpoint == "http://localhost:4317"
        assert config.traces_exporter is ExporterType.OTLP
        assert config.otel_disabled is False

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("OTEL_SERVICE_NAME", "intake-api")
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "Console")
        monkeypatch.setenv("OTEL_SDK_DISABLED", "yes")

        config = TelemetryConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.service_name == "intake-api"
        assert config.traces_exporter is ExporterType.CONSOLE
        assert config.otel_disabled is True

    def test_explicit_mapping(self):
        config = TelemetryConfig.from_env(
            {"OTEL_TRACES_EXPORTER": "none", "INTAKEFLOW_DEPLOYMENT": "staging"}
        )

        assert config.traces_exporter is ExporterType.NONE
        assert config.resource_attributes == {"deployment.environment": "staging"}
        assert config.log_level == "INFO"

    def test_unknown_exporter_falls_back_to_otlp(self, monkeypatch):
        monkeypatch.setenv("OTEL_TRACES_EXPORTER", "zipkin")
        assert TelemetryConfig.from_env().traces_exporter is ExporterType.OTLP


class TestSetupLogging:
    def test_single_stdout_handler(self, restore_root_logger):
        setup_logging("warning")
        setup_logging("debug")

        assert len(restore_root_logger.handlers) == 1
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("intakeflow").level == logging.DEBUG

    def test_quietens_http_clients(self, restore_root_logger):
        setup_logging("INFO")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_defaults_to_info(self, restore_root_logger):
        setup_logging("chatty")
        assert restore_root_logger.level == logging.INFO


class TestLoadEnvironment:
    def test_loads_without_overriding(self, tmp_path, monkeypatch):
        # Register both names with monkeypatch so teardown removes them
        monkeypatch.setenv("INTAKEFLOW_TEST_FROM_FILE", "placeholder")
        monkeypatch.delenv("INTAKEFLOW_TEST_FROM_FILE")
        monkeypatch.setenv("INTAKEFLOW_TEST_PRESET", "from-env")
        env_file = tmp_path / ".env"
        env_file.write_text("INTAKEFLOW_TEST_FROM_FILE=hello\nINTAKEFLOW_TEST_PRESET=from-file\n")

        assert load_environment(env_file) is True

        assert os.environ["INTAKEFLOW_TEST_FROM_FILE"] == "hello"
        assert os.environ["INTAKEFLOW_TEST_PRESET"] == "from-env"

    def test_missing_file(self, tmp_path):
        assert load_environment(tmp_path / "absent.env") is False


class TestInitTelemetry:
    def test_disabled_tracing(self, restore_root_logger):
        try:
            init_telemetry(TelemetryConfig(otel_disabled=True, log_level="WARNING"))
            assert not is_telemetry_enabled()
            assert restore_root_logger.level == logging.WARNING

            # Second call is a no-op
            init_telemetry(TelemetryConfig(otel_disabled=True, log_level="DEBUG"))
            assert restore_root_logger.level == logging.WARNING
        finally:
            shutdown_telemetry()
