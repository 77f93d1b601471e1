"""
Package initialization file for the engine models.

Exports the enumerations, the input/output schemas and the Formula Registry
schema so other modules can import them from aso_engine.models directly.

Usage:
    from aso_engine.models import (
        Dimension,
        MetadataDocument,
        AuditReport,
        FormulaRegistry,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from aso_engine.models.enums import (
    Dimension,
    SourceField,
    IntentClass,
    Severity,
    StabilityClass,
    PriorityLevel,
    ConfidenceLevel,
    PriorityMethod,
    ConditionOperator,
    RuleMatchMode,
)

# =============================================================================
# Input / Output Schemas
# =============================================================================

from aso_engine.models.schemas import (
    Violation,
    MetadataDocument,
    TimeSeriesPoint,
    KPISeries,
    AnomalyObservation,
    Token,
    Combo,
    DimensionScore,
    AuditReport,
    GapItem,
    StabilityScore,
    CompositeStability,
    OpportunityItem,
    ConfidenceBand,
    SimulationScenario,
    AnomalyAttribution,
    IntelligenceReport,
)

# =============================================================================
# Formula Registry Schema
# =============================================================================

from aso_engine.models.registry import (
    FormulaRegistry,
    CategoryConfig,
    MarketConfig,
    ScenarioConfig,
    AttributionRule,
    RuleCondition,
)

__all__ = [
    # Enums
    'Dimension',
    'SourceField',
    'IntentClass',
    'Severity',
    'StabilityClass',
    'PriorityLevel',
    'ConfidenceLevel',
    'PriorityMethod',
    'ConditionOperator',
    'RuleMatchMode',
    # Schemas
    'Violation',
    'MetadataDocument',
    'TimeSeriesPoint',
    'KPISeries',
    'AnomalyObservation',
    'Token',
    'Combo',
    'DimensionScore',
    'AuditReport',
    'GapItem',
    'StabilityScore',
    'CompositeStability',
    'OpportunityItem',
    'ConfidenceBand',
    'SimulationScenario',
    'AnomalyAttribution',
    'IntelligenceReport',
    # Registry
    'FormulaRegistry',
    'CategoryConfig',
    'MarketConfig',
    'ScenarioConfig',
    'AttributionRule',
    'RuleCondition',
]
