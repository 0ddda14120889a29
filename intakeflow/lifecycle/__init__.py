"""Request lifecycle: transition graph, stage derivation and services.

Only the pure lookup modules are re-exported here; import the services from
their modules (``intakeflow.lifecycle.decisions`` etc.).
"""

from .stages import derive_stage, status_in_stage
from .transitions import (
    ACTIONS,
    TRANSITIONS,
    StatusAction,
    can_transition,
    get_available_actions,
    get_valid_transitions,
    has_role,
    is_terminal,
)

__all__ = [
    "ACTIONS",
    "TRANSITIONS",
    "StatusAction",
    "can_transition",
    "derive_stage",
    "get_available_actions",
    "get_valid_transitions",
    "has_role",
    "is_terminal",
    "status_in_stage",
]
