"""Scoring engine: RICE, WSJF, weighted composite and priority label.

All functions are pure. Arithmetic is done in ``Decimal`` so that the
round-half-up rule is applied to the exact decimal value rather than to a
float that may sit just below the .5 boundary.

The active ``ScoringConfig`` is always passed explicitly. ``resolve_config``
implements the lookup order: caller config, else organization default,
else the hard-coded default.
"""

from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

import yaml

from .errors import ValidationError
from .models import Organization, ScoringConfig

DEFAULT_SCORING_CONFIG = ScoringConfig()


def _dec(value: float | int) -> Decimal:
    return Decimal(str(value))


def round_half_up(value: Decimal | float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if not isinstance(value, Decimal):
        value = _dec(value)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_rice(reach: float, impact: float, confidence: float, effort: float) -> int:
    """RICE = reach * impact * (confidence / 100) / effort, scaled by 10.

    Args:
        reach: Users or events affected per period
        impact: Impact multiplier (typically 0.25 to 3)
        confidence: Confidence percentage (0 to 100)
        effort: Person-months, must be positive

    Raises:
        ValidationError: If effort is not positive
    """
    if effort <= 0:
        raise ValidationError(f"RICE effort must be positive, got {effort}")
    score = _dec(reach) * _dec(impact) * (_dec(confidence) / 100) / _dec(effort) * 10
    return round_half_up(score)


def calculate_wsjf(
    business_value: float, time_criticality: float, risk_reduction: float, job_size: float
) -> int:
    """WSJF = (business value + time criticality + risk reduction) / job size, scaled by 10."""
    if job_size <= 0:
        raise ValidationError(f"WSJF job size must be positive, got {job_size}")
    cost_of_delay = _dec(business_value) + _dec(time_criticality) + _dec(risk_reduction)
    return round_half_up(cost_of_delay / _dec(job_size) * 10)


def calculate_weighted_score(
    business: float,
    technical: float,
    risk: float,
    config: ScoringConfig = DEFAULT_SCORING_CONFIG,
) -> int:
    """Weighted composite of the three assessment dimensions.

    Risk is inverted (100 - risk) so that a riskier request scores lower.
    """
    weights = config.weights
    score = (
        _dec(business) * _dec(weights.business)
        + _dec(technical) * _dec(weights.technical)
        + (100 - _dec(risk)) * _dec(weights.risk)
    )
    return round_half_up(score)


def priority_label(score: float, config: ScoringConfig = DEFAULT_SCORING_CONFIG) -> str:
    """Map a score to "High", "Medium" or "Low" using inclusive lower bounds."""
    if score >= config.thresholds.high_priority:
        return "High"
    if score >= config.thresholds.medium_priority:
        return "Medium"
    return "Low"


def resolve_config(
    config: ScoringConfig | None = None, organization: Organization | None = None
) -> ScoringConfig:
    """Return the scoring config in effect for a call."""
    if config is not None:
        return config
    if organization is not None and organization.scoring_config is not None:
        return organization.scoring_config
    return DEFAULT_SCORING_CONFIG


def load_scoring_config(path: Path | str) -> ScoringConfig:
    """Load a scoring config from a YAML file.

    The file uses the wire shape::

        framework: WSJF
        weights: {business: 0.5, technical: 0.3, risk: 0.2}
        thresholds: {highPriority: 80, mediumPriority: 40}

    Raises:
        ValidationError: If the file content violates the config invariants
    """
    from pydantic import ValidationError as PydanticValidationError

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    try:
        return ScoringConfig.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid scoring config in {path}", errors=e.errors()) from e
