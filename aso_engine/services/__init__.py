"""
Engine Services Module

Every service is a stateless function of its inputs plus an explicitly passed
FormulaRegistry.

Services:
- formula_registry: Registry loading, validation and hot-swap holder
- tokenizer: Tokenization, stemming, relevance classes and combos
- intent_classifier: Token intent and Intent Coverage math
- brand_analyzer: Brand token detection and brand ratio band score
- dimension_scorers: The seven audit dimension scorers
- gap_analysis: Gap, severity, score bands and gap ranking
- audit_engine: Metadata audit orchestration
- stability: Coefficient-of-variation stability scores
- opportunity_map: Ranked improvement opportunities
- outcome_simulator: Elasticity-based outcome projections
- anomaly_attribution: Ordered first-match anomaly attribution
- intelligence: Intelligence report orchestration
- series_ingestion: KPI DataFrame / CSV validation and conversion
"""

# =============================================================================
# Formula Registry
# =============================================================================

from aso_engine.services.formula_registry import (
    load,
    validate,
    check_consistency,
    default_registry,
    load_configured_registry,
    RegistryHolder,
    resolve_market,
    resolve_category,
)

# =============================================================================
# Metadata Audit
# =============================================================================

from aso_engine.services.audit_engine import audit_metadata, audit_batch
from aso_engine.services.gap_analysis import assign_severity, score_band, rank_gaps

# =============================================================================
# Intelligence Layer
# =============================================================================

from aso_engine.services.stability import calculate_stability, calculate_composite_stability
from aso_engine.services.opportunity_map import build_opportunity_map
from aso_engine.services.outcome_simulator import simulate, run_scenarios
from aso_engine.services.anomaly_attribution import attribute_anomaly, attribute_batch
from aso_engine.services.intelligence import build_intelligence_report

# =============================================================================
# KPI Ingestion
# =============================================================================

from aso_engine.services.series_ingestion import (
    validate_series_frame,
    series_from_frame,
    read_series_csv,
)

__all__ = [
    # Formula Registry
    'load',
    'validate',
    'check_consistency',
    'default_registry',
    'load_configured_registry',
    'RegistryHolder',
    'resolve_market',
    'resolve_category',
    # Metadata Audit
    'audit_metadata',
    'audit_batch',
    'assign_severity',
    'score_band',
    'rank_gaps',
    # Intelligence Layer
    'calculate_stability',
    'calculate_composite_stability',
    'build_opportunity_map',
    'simulate',
    'run_scenarios',
    'attribute_anomaly',
    'attribute_batch',
    'build_intelligence_report',
    # KPI Ingestion
    'validate_series_frame',
    'series_from_frame',
    'read_series_csv',
]
