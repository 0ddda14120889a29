"""Logging and tracing setup for intakeflow processes.

Configuration comes from the environment (optionally seeded from a .env
file). Tracing goes through a Strands-managed OpenTelemetry provider so agent
spans and the pipeline spans in :mod:`intakeflow.telemetry.spans` share one
trace tree.
"""

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv
from opentelemetry import trace
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Loggers that follow the configured level
APP_LOGGERS = ("intakeflow", "strands")

# Loggers held at WARNING unless running at DEBUG
CHATTY_LOGGERS = ("httpx", "httpcore", "urllib3", "botocore", "boto3")

_TRUTHY = {"1", "true", "yes", "on"}


class ExporterType(Enum):
    """Where finished spans are sent."""

    OTLP = "otlp"
    CONSOLE = "console"
    NONE = "none"


@dataclass
class TelemetryConfig:
    """Process-wide logging and tracing settings."""

    log_level: str = "INFO"
    service_name: str = "intakeflow"
    service_version: str = "0.1.0"
    otlp_endpoint: str = "http://localhost:4317"
    traces_exporter: ExporterType = ExporterType.OTLP
    otel_disabled: bool = False
    resource_attributes: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "TelemetryConfig":
        """Read settings from ``environ`` (``os.environ`` by default).

        Recognised variables: LOG_LEVEL, OTEL_SERVICE_NAME, OTEL_EXPORTER_OTLP_ENDPOINT,
        OTEL_TRACES_EXPORTER, OTEL_SDK_DISABLED and INTAKEFLOW_DEPLOYMENT.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        attributes = {}
        if env.get("INTAKEFLOW_DEPLOYMENT"):
            attributes["deployment.environment"] = env["INTAKEFLOW_DEPLOYMENT"]

        return cls(
            log_level=env.get("LOG_LEVEL", defaults.log_level).strip().upper(),
            service_name=env.get("OTEL_SERVICE_NAME", defaults.service_name),
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT", defaults.otlp_endpoint),
            traces_exporter=_parse_exporter(env.get("OTEL_TRACES_EXPORTER")),
            otel_disabled=env.get("OTEL_SDK_DISABLED", "").strip().lower() in _TRUTHY,
            resource_attributes=attributes,
        )


def _parse_exporter(value: str | None) -> ExporterType:
    if not value:
        return ExporterType.OTLP
    try:
        return ExporterType(value.strip().lower())
    except ValueError:
        logger.warning(f"OTEL_TRACES_EXPORTER={value!r} not supported, using otlp")
        return ExporterType.OTLP


def load_environment(env_path: Path | str | None = None) -> bool:
    """Load a .env file (default: ./.env) without overriding variables already set.

    Returns True when the file existed and defined at least one variable.
    """
    return load_dotenv(env_path or Path.cwd() / ".env", override=False)


def setup_logging(level_name: str = "INFO") -> None:
    """Send all logging to a single stdout handler at ``level_name``.

    Safe to call repeatedly; previous root handlers are replaced. Unknown level
    names fall back to INFO.
    """
    level = logging.getLevelName(level_name.strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)
    chatty_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    logger.debug(f"Logging at {logging.getLevelName(level)}")


class _TelemetryState:
    """What init_telemetry installed, so shutdown can undo it."""

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.initialized = False
        self.tracer_provider: TracerProvider | None = None
        self.strands_telemetry = None


_state = _TelemetryState()


def _install_tracing(config: TelemetryConfig) -> None:
    """Create the tracer provider and attach the configured span exporter.

    Exporter failures are logged and leave tracing off; they never stop startup.
    """
    if config.otel_disabled:
        logger.info("Tracing disabled (OTEL_SDK_DISABLED)")
        return

    from strands.telemetry import StrandsTelemetry

    resource = Resource.create(
        {
            SERVICE_NAME: config.service_name,
            SERVICE_VERSION: config.service_version,
            **config.resource_attributes,
        }
    )
    provider = TracerProvider(resource=resource)
    try:
        telemetry = StrandsTelemetry(tracer_provider=provider)
        if config.traces_exporter is ExporterType.OTLP:
            telemetry.setup_otlp_exporter(endpoint=config.otlp_endpoint)
        elif config.traces_exporter is ExporterType.CONSOLE:
            telemetry.setup_console_exporter()
    except Exception as e:
        logger.warning(f"Tracing not started, {config.traces_exporter.value} exporter failed: {e}")
        return

    trace.set_tracer_provider(provider)
    _state.tracer_provider = provider
    _state.strands_telemetry = telemetry
    logger.info(
        f"Tracing to {config.traces_exporter.value}"
        + (f" at {config.otlp_endpoint}" if config.traces_exporter is ExporterType.OTLP else "")
    )


def init_telemetry(
    config: TelemetryConfig | None = None, env_file: Path | str | None = None
) -> None:
    """Configure logging and tracing for this process. Later calls are no-ops.

    Args:
        config: Explicit settings; read from the environment when None
        env_file: .env file loaded before the environment is read
    """
    if _state.initialized:
        logger.debug("Telemetry already initialized")
        return

    if env_file is not None:
        load_environment(env_file)
    config = config or TelemetryConfig.from_env()

    setup_logging(config.log_level)
    _install_tracing(config)
    _state.initialized = True
    logger.info(f"Telemetry ready for service {config.service_name}")


def shutdown_telemetry() -> None:
    """Flush pending spans and forget the installed provider."""
    if not _state.initialized:
        return
    if _state.tracer_provider is not None:
        _state.tracer_provider.shutdown()
    _state.reset()
    logger.info("Telemetry shut down")


def is_telemetry_enabled() -> bool:
    """True when init_telemetry ran and tracing is exporting."""
    return _state.initialized and _state.strands_telemetry is not None
