"""
Intelligence Report builder.

Runs the intelligence layer over an audit report and the app's KPI history:

    KPI series -> stability (per metric + composite)
               -> opportunity map (with the audit gaps)
               -> outcome simulations
    observations -> anomaly attribution

Series that cannot be scored are not given default scores; they are listed in
`unavailableMetrics` with the reason code of the error ('insufficient_data' or
'zero_mean') and the rest of the report is built without them.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional

from aso_engine.core.errors import InsufficientDataError, UndefinedStabilityError
from aso_engine.models.registry import FormulaRegistry
from aso_engine.models.schemas import AnomalyObservation, AuditReport, IntelligenceReport, KPISeries, StabilityScore
from aso_engine.services.anomaly_attribution import attribute_batch
from aso_engine.services.opportunity_map import build_opportunity_map
from aso_engine.services.outcome_simulator import run_scenarios
from aso_engine.services.stability import calculate_composite_stability, calculate_stability

logger = logging.getLogger(__name__)


def build_intelligence_report(
    report: AuditReport,
    series: Mapping[str, KPISeries],
    registry: FormulaRegistry,
    observations: Optional[Iterable[AnomalyObservation]] = None,
) -> IntelligenceReport:
    """
    Build the intelligence bundle for one audited app.

    Args:
        report: AuditReport of the app's current metadata.
        series: KPI series by metric name.
        registry: Formula registry in use (same version as the audit).
        observations: Metric deltas to attribute.

    Returns:
        IntelligenceReport.
    """
    stability: Dict[str, StabilityScore] = {}
    unavailable: Dict[str, str] = {}
    for metric_name in sorted(series):
        try:
            stability[metric_name] = calculate_stability(series[metric_name], registry)
        except (InsufficientDataError, UndefinedStabilityError) as exc:
            logger.warning(f"Stability unavailable for {metric_name}: {exc}")
            unavailable[metric_name] = exc.reason_code

    attributions = attribute_batch(observations or (), registry)

    intelligence = IntelligenceReport(
        registryVersion=registry.version,
        stability=stability,
        unavailableMetrics=unavailable,
        compositeStability=calculate_composite_stability(stability, registry),
        opportunities=tuple(build_opportunity_map(report, registry, stability)),
        simulations=tuple(run_scenarios(report, series, registry, stability)),
        simulationDisclaimer=registry.simulation.disclaimer,
        attributions=tuple(attributions),
    )
    logger.info(
        f"Intelligence report: {len(stability)} scored metric(s), {len(unavailable)} unavailable, "
        f"{len(intelligence.attributions)} attribution(s)"
    )
    return intelligence
