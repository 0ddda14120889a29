"""Pipeline stage derivation.

The stage a request is in is a pure function of its status (plus whether an
epic already exists for the Output stage). Nothing else decides which tool
set an agent sees.
"""

from ..config import PipelineStage, RequestStatus

S = RequestStatus

STAGE_STATUSES: dict[PipelineStage, frozenset[RequestStatus]] = {
    PipelineStage.INTAKE: frozenset({S.DRAFT, S.INTAKE_IN_PROGRESS}),
    PipelineStage.ASSESSMENT: frozenset({S.PENDING_ASSESSMENT}),
    PipelineStage.OUTPUT: frozenset({S.APPROVED, S.IN_BACKLOG, S.IN_PROGRESS, S.COMPLETED}),
}


def derive_stage(status: RequestStatus, has_epic: bool = False) -> PipelineStage:
    """Return the pipeline stage for a request.

    OUTPUT only applies while no epic exists; once an epic is saved the
    request has no active stage.
    """
    if status in STAGE_STATUSES[PipelineStage.INTAKE]:
        return PipelineStage.INTAKE
    if status in STAGE_STATUSES[PipelineStage.ASSESSMENT]:
        return PipelineStage.ASSESSMENT
    if status in STAGE_STATUSES[PipelineStage.OUTPUT] and not has_epic:
        return PipelineStage.OUTPUT
    return PipelineStage.NONE


def status_in_stage(status: RequestStatus, stage: PipelineStage) -> bool:
    """True if ``status`` belongs to ``stage`` (ignores the epic condition)."""
    return status in STAGE_STATUSES.get(stage, frozenset())
