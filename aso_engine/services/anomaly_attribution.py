"""
Anomaly Attribution Engine.

Explains an observed metric delta by scanning the registry's ordered rule list
(eleven rules by default) and returning the first rule whose conditions hold.

Rule semantics:
- rules are tried strictly in registry order; the first match wins and no
  second match is ever reported, so reordering rules changes behaviour and is a
  versioned registry change
- a rule scoped to `metrics` is skipped for other observed metrics
- `match: all` needs every condition, `match: any` at least one
- the reserved signal name `observed` is the observed delta itself
- a condition on a signal the observation does not carry never matches

When no rule matches the result is an explicit unattributed record with
confidence 0, never a best-effort guess.
"""

import logging
from typing import Iterable, List, Optional

from aso_engine.models.enums import ConditionOperator, RuleMatchMode
from aso_engine.models.registry import AttributionRule, FormulaRegistry, RuleCondition
from aso_engine.models.schemas import AnomalyAttribution, AnomalyObservation

logger = logging.getLogger(__name__)

OBSERVED_SIGNAL = "observed"


def _signal_value(observation: AnomalyObservation, signal: str) -> Optional[float]:
    if signal == OBSERVED_SIGNAL:
        return observation.observedDelta
    return observation.signals.get(signal)


def condition_holds(condition: RuleCondition, observation: AnomalyObservation) -> bool:
    """Evaluate one rule condition; a missing signal is never a match."""
    value = _signal_value(observation, condition.signal)
    if value is None:
        return False

    op = condition.op
    if op == ConditionOperator.LT:
        return value < condition.value
    if op == ConditionOperator.LTE:
        return value <= condition.value
    if op == ConditionOperator.GT:
        return value > condition.value
    if op == ConditionOperator.GTE:
        return value >= condition.value
    if op == ConditionOperator.ABS_LT:
        return abs(value) < condition.value
    if op == ConditionOperator.ABS_LTE:
        return abs(value) <= condition.value
    if op == ConditionOperator.BETWEEN:
        return condition.upper is not None and condition.value <= value <= condition.upper
    return False


def rule_matches(rule: AttributionRule, observation: AnomalyObservation) -> bool:
    if rule.metrics and observation.metricName not in rule.metrics:
        return False
    results = (condition_holds(condition, observation) for condition in rule.conditions)
    if rule.match == RuleMatchMode.ANY:
        return any(results)
    return all(results)


def _render(template: str, observation: AnomalyObservation) -> str:
    date_text = observation.observedOn.isoformat() if observation.observedOn else "the observed period"
    text = template.format(
        metric=observation.metricName,
        delta=observation.observedDelta,
        date=date_text,
        signals=observation.signals,
    )
    return " ".join(text.split())


def attribute_anomaly(observation: AnomalyObservation, registry: FormulaRegistry) -> AnomalyAttribution:
    """
    Attribute one observed delta.

    Args:
        observation: Observed metric delta with concurrent signals.
        registry: Formula registry in use.

    Returns:
        AnomalyAttribution of the first matching rule, or the unattributed
        result when no rule matches.
    """
    config = registry.attribution
    for rule in config.rules:
        if rule_matches(rule, observation):
            logger.debug(f"{observation.metricName} {observation.observedDelta:+.1f}% matched rule {rule.id}")
            return AnomalyAttribution(
                metricName=observation.metricName,
                observedDelta=observation.observedDelta,
                matchedRuleId=rule.id,
                category=rule.category,
                explanation=_render(rule.explanation, observation),
                confidence=rule.confidence,
                attributed=True,
            )

    logger.debug(f"{observation.metricName} {observation.observedDelta:+.1f}% unattributed")
    return AnomalyAttribution(
        metricName=observation.metricName,
        observedDelta=observation.observedDelta,
        matchedRuleId=None,
        category=None,
        explanation=_render(config.unattributed_explanation, observation),
        confidence=0.0,
        attributed=False,
    )


def attribute_batch(
    observations: Iterable[AnomalyObservation],
    registry: FormulaRegistry,
) -> List[AnomalyAttribution]:
    """Attribute several observations, preserving input order."""
    return [attribute_anomaly(observation, registry) for observation in observations]
