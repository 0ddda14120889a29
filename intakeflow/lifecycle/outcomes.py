"""Outcome calibration.

Closes the loop between what reviewers and the assessment agent predicted
and what actually happened:

- Decision outcomes form an append-only log per decision. The outcome
  fields on ``Decision`` always mirror the latest entry.
- Realized complexity and effort are written onto the request; a prediction
  matches when predicted and actual complexity are strictly equal.
- ``calibration_report`` aggregates accuracy per predicted complexity bucket.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..config import Complexity, DecisionOutcome
from ..errors import NotFound, ValidationError
from ..models import Actor, Decision, FeatureRequest, OutcomeEntry, utcnow
from ..persistence.store import InMemoryStore
from ..scoring import round_half_up
from .decisions import require_reviewer
from .service import load_request

logger = logging.getLogger(__name__)

# Weight of each resolved outcome in decision accuracy; PENDING is excluded
OUTCOME_CREDIT: dict[DecisionOutcome, Decimal] = {
    DecisionOutcome.CORRECT: Decimal("1"),
    DecisionOutcome.PARTIALLY_CORRECT: Decimal("0.5"),
    DecisionOutcome.INCORRECT: Decimal("0"),
}


@dataclass
class BucketStats:
    """Calibration of one predicted complexity bucket."""

    predicted: int = 0
    matched: int = 0
    effort_days: list[float] = field(default_factory=list)

    @property
    def accuracy(self) -> int | None:
        return accuracy_percent(self.matched, self.predicted)

    @property
    def average_effort_days(self) -> float | None:
        if not self.effort_days:
            return None
        return round(sum(self.effort_days) / len(self.effort_days), 1)

    def to_dict(self) -> dict:
        return {
            "predicted": self.predicted,
            "matched": self.matched,
            "accuracy": self.accuracy,
            "averageEffortDays": self.average_effort_days,
        }


@dataclass
class CalibrationReport:
    """Per-bucket and overall calibration of an organization."""

    buckets: dict[Complexity, BucketStats]
    overall_predicted: int
    overall_matched: int
    decision_accuracy: int | None
    decisions_resolved: int

    @property
    def overall_accuracy(self) -> int | None:
        return accuracy_percent(self.overall_matched, self.overall_predicted)

    def to_dict(self) -> dict:
        return {
            "buckets": {c.value: stats.to_dict() for c, stats in self.buckets.items()},
            "overall": {
                "predicted": self.overall_predicted,
                "matched": self.overall_matched,
                "accuracy": self.overall_accuracy,
            },
            "decisions": {
                "resolved": self.decisions_resolved,
                "accuracy": self.decision_accuracy,
            },
        }


def accuracy_percent(matched: float | Decimal, total: int) -> int | None:
    """``matched / total`` as a rounded percentage, None when ``total`` is 0."""
    if total == 0:
        return None
    return round_half_up(Decimal(str(matched)) * 100 / total)


class OutcomeCalibrator:
    """Records realized outcomes and reports prediction accuracy."""

    def __init__(self, store: InMemoryStore):
        self.store = store

    def record_outcome(
        self,
        decision_id: str,
        outcome: DecisionOutcome | str,
        actor: Actor,
        notes: str | None = None,
    ) -> Decision:
        """Append an outcome entry and mirror it onto the decision.

        Re-invocation overwrites the decision's outcome fields; earlier
        entries stay in the log.
        """
        require_reviewer(actor)
        outcome = _coerce(DecisionOutcome, outcome)
        decision = self._load_decision(decision_id, actor)

        recorded_at = utcnow()
        with self.store.transaction():
            self.store.append_outcome(
                OutcomeEntry(
                    decision_id=decision.id,
                    outcome=outcome,
                    notes=notes,
                    recorded_by=actor.user_id,
                    recorded_at=recorded_at,
                )
            )
            updated = self.store.update_decision(
                decision.id,
                outcome=outcome,
                outcome_notes=notes,
                outcome_recorded_at=recorded_at,
            )

        logger.info(f"Outcome {outcome.value} recorded for decision {decision.id}")
        return updated

    def outcome_history(self, decision_id: str, actor: Actor) -> list[OutcomeEntry]:
        """Outcome log of a decision, oldest first."""
        self._load_decision(decision_id, actor)
        return self.store.list_outcomes(decision_id)

    def record_actual_complexity(
        self,
        request_id: str,
        actual: Complexity | str,
        actor: Actor,
        effort_days: float | None = None,
        lessons: str | None = None,
    ) -> FeatureRequest:
        """Write realized complexity, effort and lessons onto a request."""
        require_reviewer(actor)
        actual = _coerce(Complexity, actual)
        if effort_days is not None and effort_days < 0:
            raise ValidationError("actual effort days must not be negative")

        request = load_request(self.store, request_id, actor.organization_id)
        updated = self.store.update_request(
            request.id,
            expected_version=request.version,
            actual_complexity=actual,
            actual_effort_days=effort_days,
            lessons_learned=lessons,
        )
        logger.info(
            f"Actual complexity {actual.value} recorded for {request.id} "
            f"(predicted {request.complexity.value if request.complexity else 'none'}, "
            f"matched={updated.complexity_matched})"
        )
        return updated

    def calibration_report(self, organization_id: str) -> CalibrationReport:
        """Aggregate prediction accuracy for an organization.

        Only requests with both a predicted and an actual complexity are
        counted. Buckets are keyed by predicted complexity.
        """
        buckets: dict[Complexity, BucketStats] = {}
        predicted = matched = 0

        requests = self.store.list_requests(organization_id)
        for request in requests:
            if request.complexity is None or request.actual_complexity is None:
                continue
            stats = buckets.setdefault(request.complexity, BucketStats())
            stats.predicted += 1
            predicted += 1
            if request.complexity_matched:
                stats.matched += 1
                matched += 1
            if request.actual_effort_days is not None:
                stats.effort_days.append(request.actual_effort_days)

        credit = Decimal("0")
        resolved = 0
        for request in requests:
            for decision in self.store.list_decisions(request.id):
                if decision.outcome is None or decision.outcome == DecisionOutcome.PENDING:
                    continue
                credit += OUTCOME_CREDIT[decision.outcome]
                resolved += 1

        ordered = {c: buckets[c] for c in Complexity if c in buckets}
        return CalibrationReport(
            buckets=ordered,
            overall_predicted=predicted,
            overall_matched=matched,
            decision_accuracy=accuracy_percent(credit, resolved),
            decisions_resolved=resolved,
        )

    def _load_decision(self, decision_id: str, actor: Actor) -> Decision:
        decision = self.store.get_decision(decision_id)
        if decision is None:
            raise NotFound("Decision not found")
        # Scope through the owning request's organization
        request = self.store.get_request(decision.request_id)
        if request is None or request.organization_id != actor.organization_id:
            raise NotFound("Decision not found")
        return decision


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as e:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Unknown {enum_cls.__name__} '{value}'. Valid: {valid}") from e
