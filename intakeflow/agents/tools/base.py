"""Tool contract primitives.

A ``ToolDefinition`` declares everything the orchestrator needs to run an
agent tool without knowing what it does:

- the stage it belongs to
- a pydantic input model (camelCase aliases are the wire names)
- a handler ``(ctx, params) -> dict`` that performs at most one persisted write
- an optional status side effect ``(from, to)``, applied by the orchestrator
  in the same unit of work once the handler's write succeeded
- ``read_only`` for tools that never write; they run outside the unit of work
  so slow reads (network lookups) never hold the store lock

Handlers never change status themselves and never swallow persistence
errors; the orchestrator converts failures into error payloads.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from ...config import PipelineStage, RequestStatus
from ...errors import NotFound
from ...models import Actor, FeatureRequest

if TYPE_CHECKING:
    from ...integrations.github import GitHubClient
    from ...persistence.store import InMemoryStore


class ToolInput(BaseModel):
    """Base class for tool input models.

    Unknown fields are rejected; fields may be given by wire alias or by name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class EmptyInput(ToolInput):
    """Input of tools that take no arguments."""

    pass


@dataclass
class ToolContext:
    """Per-session state handed to every tool handler.

    ``request`` is the row as last read or written by this session; writes
    made through ``update_request`` compare-and-swap against its version and
    refresh it.
    """

    store: "InMemoryStore"
    request: FeatureRequest
    actor: Actor
    github: "GitHubClient | None" = None
    extras: dict[str, Any] = field(default_factory=dict)

    @property
    def request_id(self) -> str:
        return self.request.id

    @property
    def organization_id(self) -> str:
        return self.request.organization_id

    def refresh(self) -> FeatureRequest:
        """Re-read the request row."""
        current = self.store.get_request(self.request.id)
        if current is None or current.organization_id != self.actor.organization_id:
            raise NotFound("Feature request not found")
        self.request = current
        return current

    def update_request(self, **changes: Any) -> FeatureRequest:
        """Compare-and-swap update of the session's request."""
        self.request = self.store.update_request(
            self.request.id, expected_version=self.request.version, **changes
        )
        return self.request


ToolHandler = Callable[[ToolContext, Any], dict[str, Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """Declarative description of one agent tool."""

    name: str
    description: str
    stage: PipelineStage
    input_model: type[ToolInput]
    handler: ToolHandler
    status_effect: tuple[RequestStatus, RequestStatus] | None = None
    read_only: bool = False

    def input_schema(self) -> dict[str, Any]:
        """JSON schema of the input, using wire (alias) names."""
        return self.input_model.model_json_schema(by_alias=True)

    def tool_spec(self) -> dict[str, Any]:
        """Tool spec in the shape model providers expect."""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {"json": self.input_schema()},
        }


def error_payload(error: Exception) -> dict[str, str]:
    """Result payload returned to the agent when a tool fails."""
    return {"error": str(error), "errorType": type(error).__name__}


def request_summary(request: FeatureRequest, *fields: str) -> dict[str, Any]:
    """Project a request onto camelCase wire fields.

    Args:
        request: Source request
        *fields: Wire names to include, in output order
    """
    values = {
        "id": request.id,
        "title": request.title,
        "summary": request.summary,
        "status": request.status.value,
        "priorityScore": request.priority_score,
        "businessScore": request.business_score,
        "technicalScore": request.technical_score,
        "riskScore": request.risk_score,
        "complexity": request.complexity.value if request.complexity else None,
        "qualityScore": request.quality_score,
    }
    return {name: values[name] for name in fields}
