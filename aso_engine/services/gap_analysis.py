"""
Gap Analyzer.

Turns raw dimension scores into DimensionScore records and ranks the gaps.

For each dimension:
    score    = raw score clamped to [0, 100] and rounded to registry precision
    gap      = 100 - score (exactly; the gap is never rounded separately)
    severity = registry severity band containing the gap
    band     = registry score band label ("Excellent" ... "Needs Work")

Band intervals are half-open, [min, max), except the band that ends at 100,
which also includes 100. All boundaries are registry data.

The gap ranking orders dimensions by gap (largest first) and breaks ties by the
registry's dimension_order so the ordering is stable across runs.
"""

import logging
from typing import Iterable, List, Sequence

from aso_engine.core.errors import ConfigurationError
from aso_engine.models.enums import Dimension, Severity
from aso_engine.models.registry import FormulaRegistry, ScoreBand
from aso_engine.models.schemas import AuditReport, DimensionScore, GapItem
from aso_engine.services.dimension_scorers import RawScore

logger = logging.getLogger(__name__)

COMPONENT_PRECISION = 4


def _in_band(value: float, low: float, high: float) -> bool:
    return low <= value < high or (value == high == 100)


def assign_severity(gap: float, registry: FormulaRegistry) -> Severity:
    """
    Map a gap to its severity using the registry severity bands.

    Default bands: critical >= 40, significant 25-40, moderate 15-25, minor < 15.

    Raises:
        ConfigurationError: If no band contains the gap (only possible with a
            registry that bypassed validation).
    """
    for band in registry.severity_bands:
        if _in_band(gap, band.min_gap, band.max_gap):
            return band.severity
    raise ConfigurationError(f"No severity band contains gap {gap}")


def label_for_score(score: float, bands: Iterable[ScoreBand]) -> str:
    for band in bands:
        if _in_band(score, band.min_score, band.max_score):
            return band.label
    raise ConfigurationError(f"No score band contains score {score}")


def score_band(score: float, registry: FormulaRegistry) -> str:
    """Score band label for a 0-100 score (e.g. 'Needs Work' below 50)."""
    return label_for_score(score, registry.score_bands)


def build_dimension_score(name: Dimension, raw: RawScore, registry: FormulaRegistry) -> DimensionScore:
    """
    Build the DimensionScore for one scorer result.

    Args:
        name: Dimension scored.
        raw: Unrounded scorer output.
        registry: Formula registry in use.

    Returns:
        DimensionScore satisfying score in [0, 100] and gap == 100 - score.
    """
    score = round(max(0.0, min(100.0, raw.score)), registry.precision)
    gap = 100.0 - score
    return DimensionScore(
        name=name,
        score=score,
        gap=gap,
        severity=assign_severity(gap, registry),
        band=score_band(score, registry),
        explanationTokens=raw.explanation_tokens,
        components={key: round(value, COMPONENT_PRECISION) for key, value in raw.components.items()},
    )


def overall_score(dimensions: Sequence[DimensionScore], registry: FormulaRegistry) -> float:
    """Weighted mean of the dimension scores using dimension_weights."""
    total_weight = 0.0
    weighted = 0.0
    for item in dimensions:
        weight = registry.dimension_weights.get(item.name, 0.0)
        weighted += weight * item.score
        total_weight += weight
    if total_weight <= 0:
        return 0.0
    return round(weighted / total_weight, registry.precision)


def rank_gaps(report: AuditReport, registry: FormulaRegistry) -> List[GapItem]:
    """
    Rank the report's dimensions by gap, largest first.

    Ties are broken by registry dimension_order.

    Example:
        >>> for item in rank_gaps(report, registry):
        ...     print(item.rank, item.dimension.value, item.gap, item.severity.value)
        1 keyword_coverage 100.0 critical
        2 intent_coverage 65.0 critical
        ...
    """
    order = {dimension: index for index, dimension in enumerate(registry.dimension_order)}
    ranked = sorted(report.dimensions, key=lambda item: (-item.gap, order.get(item.name, len(order))))
    return [
        GapItem(
            rank=index + 1,
            dimension=item.name,
            score=item.score,
            gap=item.gap,
            severity=item.severity,
        )
        for index, item in enumerate(ranked)
    ]
