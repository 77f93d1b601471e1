"""
Outcome Simulator.

Projects KPI outcomes under the registry's improvement scenarios (keyword
expansion, brand rebalance, intent alignment, structure optimization):

    projectedOutcome = currentValue + inputDelta * elasticity[scenario][metric]

clamped to the registry cap for the metric (e.g. conversion rate never above
30%). When a historical series of the metric is available the projection gets a
confidence band whose half-width scales with the series' volatility:

    half_width = |projected - current| * band_multiplier[stability class]

Unknown scenarios, and metrics a scenario declares no elasticity for, are wiring
errors and raise UnknownScenarioError instead of projecting zero change.
"""

import logging
from typing import List, Mapping, Optional, Tuple

from aso_engine.core.errors import InsufficientDataError, UndefinedStabilityError, UnknownScenarioError
from aso_engine.models.enums import StabilityClass
from aso_engine.models.registry import FormulaRegistry, ScenarioConfig
from aso_engine.models.schemas import AuditReport, ConfidenceBand, KPISeries, SimulationScenario, StabilityScore
from aso_engine.services.stability import calculate_stability

logger = logging.getLogger(__name__)


def _scenario_and_elasticity(
    scenario_name: str,
    metric_name: str,
    registry: FormulaRegistry,
) -> Tuple[ScenarioConfig, float]:
    scenario = registry.get_scenario(scenario_name)
    if scenario is None:
        raise UnknownScenarioError(f"Unknown simulation scenario '{scenario_name}'")
    if metric_name not in scenario.elasticities:
        raise UnknownScenarioError(
            f"Scenario '{scenario_name}' declares no elasticity for metric '{metric_name}'"
        )
    return scenario, scenario.elasticities[metric_name]


def _apply_cap(value: float, metric_name: str, registry: FormulaRegistry) -> Tuple[float, bool]:
    cap = registry.simulation.caps.get(metric_name)
    if cap is None:
        return value, False
    if cap.max_value is not None and value > cap.max_value:
        return cap.max_value, True
    if cap.min_value is not None and value < cap.min_value:
        return cap.min_value, True
    return value, False


def _project(
    scenario: ScenarioConfig,
    metric_name: str,
    elasticity: float,
    input_delta: float,
    current_value: float,
    registry: FormulaRegistry,
    stability_class: Optional[StabilityClass],
) -> SimulationScenario:
    precision = registry.precision
    projected, capped = _apply_cap(current_value + input_delta * elasticity, metric_name, registry)

    band = None
    if stability_class is not None:
        half_width = abs(projected - current_value) * registry.simulation.band_multipliers[stability_class]
        band = ConfidenceBand(
            lower=round(projected - half_width, precision),
            upper=round(projected + half_width, precision),
            stabilityClass=stability_class,
        )

    return SimulationScenario(
        scenarioName=scenario.name,
        label=scenario.label,
        metricName=metric_name,
        driverDimension=scenario.driver,
        currentValue=round(current_value, precision),
        inputDelta=round(input_delta, precision),
        elasticity=elasticity,
        projectedOutcome=round(projected, precision),
        projectedChange=round(projected - current_value, precision),
        capped=capped,
        confidence=scenario.confidence,
        confidenceBand=band,
    )


def simulate(
    scenario_name: str,
    metric_name: str,
    input_delta: float,
    current_value: float,
    registry: FormulaRegistry,
    series: Optional[KPISeries] = None,
) -> SimulationScenario:
    """
    Project one metric under one scenario.

    Args:
        scenario_name: Registry scenario name (e.g. 'keyword_expansion').
        metric_name: Target metric with a registered elasticity.
        input_delta: Hypothetical change of the scenario's driver, in points.
        current_value: Current value of the target metric.
        registry: Formula registry in use.
        series: Optional history of the target metric for the confidence band.

    Returns:
        SimulationScenario with the projection and, with a series, its band.

    Raises:
        UnknownScenarioError: Unknown scenario or scenario/metric pair.
        InsufficientDataError / UndefinedStabilityError: The series cannot be
            scored for stability.
    """
    scenario, elasticity = _scenario_and_elasticity(scenario_name, metric_name, registry)
    stability_class = calculate_stability(series, registry).classification if series is not None else None
    return _project(scenario, metric_name, elasticity, input_delta, current_value, registry, stability_class)


def run_scenarios(
    report: AuditReport,
    series: Mapping[str, KPISeries],
    registry: FormulaRegistry,
    stability: Optional[Mapping[str, StabilityScore]] = None,
) -> List[SimulationScenario]:
    """
    Simulate every registry scenario against the metrics that have history.

    Each scenario's input delta is its driver dimension's gap times gap_capture
    (the share of the gap the improvement is assumed to close). The current
    value is the newest point of the metric's series. Results are ordered by
    absolute projected change, ties in registry order, and cut to max_scenarios.

    Args:
        report: Audit report providing the driver gaps.
        series: KPI series by metric name.
        registry: Formula registry in use.
        stability: Precomputed stability scores by metric; computed from the
            series when omitted.
    """
    results = []
    order = 0
    for scenario in registry.simulation.scenarios:
        driver_gap = report.dimension(scenario.driver).gap
        input_delta = driver_gap * scenario.gap_capture
        for metric_name, elasticity in scenario.elasticities.items():
            metric_series = series.get(metric_name)
            if metric_series is None or not metric_series.points:
                continue

            if stability is not None:
                score = stability.get(metric_name)
                stability_class = score.classification if score is not None else None
            else:
                try:
                    stability_class = calculate_stability(metric_series, registry).classification
                except (InsufficientDataError, UndefinedStabilityError) as exc:
                    logger.debug(f"No confidence band for {metric_name}: {exc}")
                    stability_class = None

            current_value = metric_series.points[-1].value
            simulated = _project(
                scenario, metric_name, elasticity, input_delta, current_value, registry, stability_class
            )
            results.append((order, simulated))
            order += 1

    results.sort(key=lambda item: (-abs(item[1].projectedChange), item[0]))
    limited = [simulated for _, simulated in results[:registry.simulation.max_scenarios]]
    logger.debug(f"Simulated {len(results)} scenario/metric pairs, kept {len(limited)}")
    return limited
