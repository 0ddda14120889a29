"""Error taxonomy for the request lifecycle engine.

``NotFound``, ``Forbidden``, ``InvalidTransition`` and ``ValidationError`` abort
an operation before any write and are surfaced to the caller unchanged.
``ExternalFailure`` is raised by best-effort collaborators (notifications,
third-party sync); callers on the primary path log and swallow it.
"""


class IntakeflowError(Exception):
    """Base class for all intakeflow errors."""

    pass


class NotFound(IntakeflowError):
    """Entity is missing or belongs to another organization."""

    pass


class Forbidden(IntakeflowError):
    """Actor's role is below the level the operation requires."""

    pass


class InvalidTransition(IntakeflowError):
    """Target status is not reachable from the current status."""

    def __init__(self, current: str, requested: str, message: str | None = None):
        super().__init__(message or f"Cannot transition from {current} to {requested}")
        self.current = current
        self.requested = requested


class StageMismatch(InvalidTransition):
    """A tool was called while the request is outside the tool's stage."""

    pass


class ValidationError(IntakeflowError):
    """Input failed validation (tool schema, empty rationale, bad enum value)."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConflictError(IntakeflowError):
    """Row changed since it was read; the write was rejected. Safe to retry."""

    def __init__(self, entity_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Concurrent update on {entity_id}: expected version {expected_version}, "
            f"found {actual_version}. Reload and retry."
        )
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        self.retryable = True


class ExternalFailure(IntakeflowError):
    """Best-effort collaborator (notification sink, issue tracker, chat) failed."""

    def __init__(self, collaborator: str, message: str):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class ToolExecutionError(IntakeflowError):
    """A tool's persisted effect failed after its input was accepted."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name


class ToolTimeout(ToolExecutionError):
    """A tool invocation exceeded its deadline."""

    pass


class SessionClosed(IntakeflowError):
    """Tool call arrived after the session completed or was cancelled."""

    pass
