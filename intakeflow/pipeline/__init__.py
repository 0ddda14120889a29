"""Agent pipeline: tool orchestration and per-stage tool-call sessions."""

from .orchestrator import AgentPipelineOrchestrator, CancellationToken
from .session import ToolCallSession, build_session_application

__all__ = [
    "AgentPipelineOrchestrator",
    "CancellationToken",
    "ToolCallSession",
    "build_session_application",
]
