"""
Opportunity Map Generator.

Combines the audit gaps with KPI volatility into a ranked list of improvement
opportunities, one per registry opportunity category (eight by default).

For each category:
    currentValue = mean score of the category's dimensions
    gapToTarget  = max(0, target - currentValue)
    severity     = registry severity band of gapToTarget
    volatility   = stability class of the category's KPI metric, when scored

Priority (registry `opportunities.priority`):
- weighted_sum:  gap_weight * gap + volatility_weight * volatility_score
- lexicographic: larger gap first; volatility only breaks ties

Ties always fall back to category declaration order, so the ranking is stable.
Scores above high_threshold are labelled high, above medium_threshold medium.
"""

import logging
from typing import List, Mapping, Optional

from aso_engine.models.enums import PriorityLevel, PriorityMethod
from aso_engine.models.registry import FormulaRegistry, OpportunityCategoryConfig
from aso_engine.models.schemas import AuditReport, OpportunityItem, StabilityScore
from aso_engine.services.gap_analysis import assign_severity

logger = logging.getLogger(__name__)


def priority_level(priority_score: float, registry: FormulaRegistry) -> PriorityLevel:
    config = registry.opportunities.priority
    if priority_score >= config.high_threshold:
        return PriorityLevel.HIGH
    if priority_score >= config.medium_threshold:
        return PriorityLevel.MEDIUM
    return PriorityLevel.LOW


def _category_value(report: AuditReport, category: OpportunityCategoryConfig) -> float:
    scores = [report.dimension(dimension).score for dimension in category.dimensions]
    return sum(scores) / len(scores)


def build_opportunity_map(
    report: AuditReport,
    registry: FormulaRegistry,
    stability: Optional[Mapping[str, StabilityScore]] = None,
) -> List[OpportunityItem]:
    """
    Rank every registry opportunity category for one audit.

    Args:
        report: Audit report to draw dimension scores from.
        registry: Formula registry in use.
        stability: StabilityScore by metric name, for categories tied to a KPI.

    Returns:
        OpportunityItems ordered by priority (rank 1 first).
    """
    stability = stability or {}
    config = registry.opportunities.priority

    candidates = []
    for order, category in enumerate(registry.opportunities.categories):
        current = round(_category_value(report, category), registry.precision)
        gap = max(0.0, category.target - current)
        severity = assign_severity(min(gap, 100.0), registry)

        score = stability.get(category.metric) if category.metric else None
        volatility = score.classification if score is not None else None
        volatility_score = (
            config.volatility_scores.get(volatility, config.unknown_volatility_score)
            if volatility is not None
            else config.unknown_volatility_score
        )

        if config.method == PriorityMethod.WEIGHTED_SUM:
            priority_score = config.gap_weight * gap + config.volatility_weight * volatility_score
            sort_key = (-priority_score, order)
        else:
            priority_score = gap
            sort_key = (-gap, -volatility_score, order)

        action = category.actions[severity].format(
            label=category.label,
            current=current,
            gap=gap,
            target=category.target,
            severity=severity.value,
        )
        candidates.append((sort_key, category, current, gap, severity, volatility, priority_score, action))

    candidates.sort(key=lambda candidate: candidate[0])

    items = []
    for rank, (_, category, current, gap, severity, volatility, priority_score, action) in enumerate(candidates, start=1):
        priority_score = round(priority_score, registry.precision)
        items.append(
            OpportunityItem(
                category=category.id,
                label=category.label,
                dimensions=category.dimensions,
                currentValue=current,
                gapToTarget=round(gap, registry.precision),
                severity=severity,
                volatility=volatility,
                priorityScore=priority_score,
                priorityRank=rank,
                priority=priority_level(priority_score, registry),
                recommendedAction=action,
            )
        )

    logger.debug(f"Opportunity map built with {len(items)} categories")
    return items
