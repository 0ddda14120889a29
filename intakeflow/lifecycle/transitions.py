"""Status transition graph and role gating.

Two static tables drive the lifecycle:

- ``TRANSITIONS``: ordered status -> successor statuses. REJECTED and
  COMPLETED are terminal.
- ``ACTIONS`` / ``STATUS_ACTIONS``: named actions a user can take from a
  status, each with the minimum role required. ``ACTIONS`` is the single
  source of truth for action metadata.

Everything here is a pure lookup.
"""

from dataclasses import dataclass

from ..config import ROLE_LEVELS, RequestStatus, UserRole

S = RequestStatus

TRANSITIONS: dict[RequestStatus, tuple[RequestStatus, ...]] = {
    S.DRAFT: (S.INTAKE_IN_PROGRESS,),
    S.INTAKE_IN_PROGRESS: (S.PENDING_ASSESSMENT, S.DRAFT),
    S.PENDING_ASSESSMENT: (S.UNDER_REVIEW,),
    S.UNDER_REVIEW: (S.APPROVED, S.REJECTED, S.DEFERRED, S.NEEDS_INFO),
    S.NEEDS_INFO: (S.UNDER_REVIEW, S.DEFERRED),
    S.APPROVED: (S.IN_BACKLOG,),
    S.REJECTED: (),
    S.DEFERRED: (S.UNDER_REVIEW,),
    S.IN_BACKLOG: (S.IN_PROGRESS,),
    S.IN_PROGRESS: (S.COMPLETED, S.IN_BACKLOG),
    S.COMPLETED: (),
}

TERMINAL_STATUSES: frozenset[RequestStatus] = frozenset(
    status for status, successors in TRANSITIONS.items() if not successors
)


@dataclass(frozen=True)
class StatusAction:
    """A named, role-gated action that moves a request to ``target_status``."""

    key: str
    label: str
    target_status: RequestStatus
    variant: str  # default, destructive, outline, secondary
    required_role: UserRole

    def to_dict(self) -> dict[str, str]:
        return {
            "key": self.key,
            "label": self.label,
            "targetStatus": self.target_status.value,
            "variant": self.variant,
            "requiredRole": self.required_role.value,
        }


_STAKEHOLDER = UserRole.STAKEHOLDER
_REVIEWER = UserRole.REVIEWER

ACTIONS: dict[str, StatusAction] = {
    action.key: action
    for action in (
        StatusAction("start_intake", "Start Intake", S.INTAKE_IN_PROGRESS, "default", _STAKEHOLDER),
        StatusAction(
            "submit_for_assessment",
            "Submit for Assessment",
            S.PENDING_ASSESSMENT,
            "default",
            _STAKEHOLDER,
        ),
        StatusAction("approve", "Approve", S.APPROVED, "default", _REVIEWER),
        StatusAction("reject", "Reject", S.REJECTED, "destructive", _REVIEWER),
        StatusAction("defer", "Defer", S.DEFERRED, "outline", _REVIEWER),
        StatusAction("request_info", "Request Info", S.NEEDS_INFO, "secondary", _REVIEWER),
        StatusAction("move_to_backlog", "Move to Backlog", S.IN_BACKLOG, "default", _REVIEWER),
        StatusAction("start_work", "Start Work", S.IN_PROGRESS, "default", _REVIEWER),
        StatusAction("mark_complete", "Mark Complete", S.COMPLETED, "default", _REVIEWER),
        StatusAction("reopen", "Reopen Review", S.UNDER_REVIEW, "outline", _REVIEWER),
        StatusAction("return_to_backlog", "Return to Backlog", S.IN_BACKLOG, "outline", _REVIEWER),
    )
}

# submit_for_assessment is defined but not offered from any status: only the
# intake agent's mark_intake_complete tool performs that transition.
STATUS_ACTIONS: dict[RequestStatus, tuple[str, ...]] = {
    S.DRAFT: ("start_intake",),
    S.INTAKE_IN_PROGRESS: (),
    S.PENDING_ASSESSMENT: (),
    S.UNDER_REVIEW: ("approve", "reject", "defer", "request_info"),
    S.NEEDS_INFO: ("reopen", "defer"),
    S.APPROVED: ("move_to_backlog",),
    S.REJECTED: (),
    S.DEFERRED: ("reopen",),
    S.IN_BACKLOG: ("start_work",),
    S.IN_PROGRESS: ("mark_complete", "return_to_backlog"),
    S.COMPLETED: (),
}


def role_level(role: UserRole) -> int:
    return ROLE_LEVELS[role]


def has_role(role: UserRole, required: UserRole) -> bool:
    """True if ``role`` meets or exceeds ``required``."""
    return role_level(role) >= role_level(required)


def can_transition(current: RequestStatus, target: RequestStatus) -> bool:
    """True iff ``target`` is a direct successor of ``current``."""
    return target in TRANSITIONS.get(current, ())


def get_valid_transitions(status: RequestStatus) -> list[RequestStatus]:
    """Successors of ``status`` in table order. Returns a fresh list."""
    return list(TRANSITIONS.get(status, ()))


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATUSES


def get_available_actions(status: RequestStatus, role: UserRole) -> list[StatusAction]:
    """Actions offered from ``status`` that ``role`` is allowed to take.

    Monotonic in role: a higher role never sees fewer actions.
    """
    return [
        ACTIONS[key]
        for key in STATUS_ACTIONS.get(status, ())
        if has_role(role, ACTIONS[key].required_role)
    ]


def format_status(status: RequestStatus | str) -> str:
    """Human-readable status, e.g. ``UNDER_REVIEW`` -> ``Under Review``."""
    value = status.value if isinstance(status, RequestStatus) else status
    return " ".join(word.capitalize() for word in value.split("_"))
