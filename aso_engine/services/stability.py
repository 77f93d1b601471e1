"""
Stability Score Calculator.

Measures how volatile a KPI series is with its coefficient of variation:

    CV = population standard deviation / |mean|

Classification (registry thresholds, defaults shown):
- stable: CV < 0.15
- moderate: 0.15 <= CV <= 0.35
- volatile: CV > 0.35

The 0-100 stability index inverts a capped CV so higher means steadier:

    stabilityIndex = 100 * (1 - min(CV, cv_cap) / cv_cap)

Failure modes are distinct errors rather than default values:
- fewer points than min_sample_count -> InsufficientDataError (retry later)
- mean of zero -> UndefinedStabilityError (treat the metric as not applicable)

Only the newest max_sample_count points are used.
"""

import logging
from typing import Dict, Mapping, Optional

import numpy as np

from aso_engine.core.errors import InsufficientDataError, UndefinedStabilityError
from aso_engine.models.enums import StabilityClass
from aso_engine.models.registry import FormulaRegistry
from aso_engine.models.schemas import CompositeStability, KPISeries, StabilityScore
from aso_engine.services.gap_analysis import label_for_score

logger = logging.getLogger(__name__)

# CV is reported with more digits than scores so the classification can be
# reproduced from the output
CV_PRECISION = 4


def classify_cv(cv: float, registry: FormulaRegistry) -> StabilityClass:
    """Classify a coefficient of variation against the registry thresholds."""
    config = registry.stability
    if cv < config.stable_max_cv:
        return StabilityClass.STABLE
    if cv <= config.moderate_max_cv:
        return StabilityClass.MODERATE
    return StabilityClass.VOLATILE


def stability_index(cv: float, registry: FormulaRegistry) -> float:
    cap = registry.stability.cv_cap
    return 100.0 * (1.0 - min(cv, cap) / cap)


def calculate_stability(series: KPISeries, registry: FormulaRegistry) -> StabilityScore:
    """
    Compute the StabilityScore of one KPI series.

    Args:
        series: Ordered, single-metric series.
        registry: Formula registry in use.

    Returns:
        StabilityScore with mean, population std, CV, class and index.

    Raises:
        InsufficientDataError: Fewer points than stability.min_sample_count.
        UndefinedStabilityError: The series mean is zero.
    """
    config = registry.stability
    values = series.values[-config.max_sample_count:]

    if len(values) < config.min_sample_count:
        raise InsufficientDataError(series.metricName, len(values), config.min_sample_count)

    data = np.asarray(values, dtype=float)
    mean = float(np.mean(data))
    if mean == 0:
        raise UndefinedStabilityError(series.metricName)

    # Population standard deviation (ddof=0)
    std = float(np.std(data))
    cv = std / abs(mean)
    classification = classify_cv(cv, registry)

    logger.debug(f"Stability of {series.metricName}: n={len(values)}, cv={cv:.4f} ({classification.value})")

    return StabilityScore(
        metricName=series.metricName,
        mean=round(mean, registry.precision),
        standardDeviation=round(std, registry.precision),
        coefficientOfVariation=round(cv, CV_PRECISION),
        classification=classification,
        stabilityIndex=round(stability_index(cv, registry), registry.precision),
        sampleSize=len(values),
    )


def calculate_composite_stability(
    scores: Mapping[str, StabilityScore],
    registry: FormulaRegistry,
) -> Optional[CompositeStability]:
    """
    Weighted stability index across the metrics named in stability.weights.

    Weights are renormalized over the metrics that have a score, so a missing
    metric neither counts as stable nor as volatile.

    Returns:
        CompositeStability, or None when no weighted metric has a score.
    """
    weights = registry.stability.weights
    used: Dict[str, float] = {
        metric: weight
        for metric, weight in weights.items()
        if metric in scores and weight > 0
    }
    if not used:
        return None

    total = sum(used.values())
    score = sum(scores[metric].stabilityIndex * weight for metric, weight in used.items()) / total
    score = round(max(0.0, min(100.0, score)), registry.precision)

    return CompositeStability(
        score=score,
        interpretation=label_for_score(score, registry.stability.interpretation_bands),
        metricsUsed=tuple(used),
        weights={metric: round(weight / total, CV_PRECISION) for metric, weight in used.items()},
    )
