"""Expose a session's tool catalogue to a Strands agent.

Each ``ToolDefinition`` becomes a ``PythonAgentTool`` whose spec carries the
definition's JSON schema (wire names) and whose function forwards the call
to ``ToolCallSession.submit``. The session does all validation and
execution; this module only adapts shapes.
"""

import logging
from typing import TYPE_CHECKING, Any

from strands.tools.tools import PythonAgentTool

from ...errors import SessionClosed
from .base import ToolDefinition, error_payload

if TYPE_CHECKING:
    from ...pipeline.session import ToolCallSession

logger = logging.getLogger(__name__)


def _tool_result(tool_use_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "toolUseId": tool_use_id,
        "status": "error" if "error" in payload else "success",
        "content": [{"json": payload}],
    }


def tool_function(definition: ToolDefinition, session: "ToolCallSession"):
    """Strands tool function ``(tool_use, **kwargs) -> ToolResult`` for one definition."""

    def invoke(tool_use: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        tool_use_id = tool_use.get("toolUseId", "")
        try:
            payload = session.submit(definition.name, tool_use.get("input") or {})
        except SessionClosed as e:
            payload = error_payload(e)
        return _tool_result(tool_use_id, payload)

    return invoke


def to_agent_tool(definition: ToolDefinition, session: "ToolCallSession") -> PythonAgentTool:
    """Wrap one definition as a Strands tool bound to ``session``."""
    return PythonAgentTool(
        definition.name, definition.tool_spec(), tool_function(definition, session)
    )


def to_agent_tools(session: "ToolCallSession") -> list[PythonAgentTool]:
    """Strands tools for every tool in the session's pinned stage."""
    tools = [to_agent_tool(definition, session) for definition in session.tools]
    logger.debug(f"Bridged {len(tools)} tools for {session.stage.value}")
    return tools
