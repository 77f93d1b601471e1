"""
Pydantic models for the ASO metadata engine's input and output contract.

This module provides type-safe validation and serialization for everything that
crosses the engine boundary:

- Input: MetadataDocument, TimeSeriesPoint / KPISeries, AnomalyObservation
- Audit output: Token, Combo, DimensionScore, AuditReport, GapItem
- Intelligence output: StabilityScore, CompositeStability, OpportunityItem,
  SimulationScenario, AnomalyAttribution, IntelligenceReport
- Registry validation: Violation

Field names follow the camelCase JSON contract consumed by the presentation
layer. Output models are frozen: a report is immutable once returned.

All models use Pydantic v2 syntax.
"""

from datetime import date as DateType, datetime
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from aso_engine.models.enums import (
    ConfidenceLevel,
    Dimension,
    IntentClass,
    PriorityLevel,
    Severity,
    SourceField,
    StabilityClass,
)


# =============================================================================
# Registry Validation
# =============================================================================


class Violation(BaseModel):
    """
    A single registry validation problem.

    Attributes:
        path: Dotted path of the offending registry field
            (e.g. 'dimensions.relevance.weights').
        message: Description of the problem.
    """
    model_config = ConfigDict(frozen=True)

    path: str
    message: str


# =============================================================================
# Input Models
# =============================================================================


class MetadataDocument(BaseModel):
    """
    Listing metadata to audit.

    Constructed per audit call by the metadata-ingestion collaborator and never
    persisted by the engine. Text fields may be empty; empty fields simply score
    at the low end of their dimensions.
    """
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "title": "Lingo: Learn Spanish & French",
                "subtitle": "Speak a new language fast",
                "description": "Learn Spanish with short daily lessons...",
                "category": "education",
                "market": "us",
                "brandNames": ["Lingo"],
            }
        }
    )

    title: str = Field(default="", description="App name / title")
    subtitle: str = Field(default="", description="Subtitle (iOS) or short description")
    description: str = Field(default="", description="Long description")
    category: str = Field(..., min_length=1, description="Category / vertical identifier")
    market: str = Field(..., min_length=1, description="Market (storefront) code")
    brandNames: Tuple[str, ...] = Field(
        default=(),
        description="Brand forms identifying the app's own brand"
    )

    @field_validator('title', 'subtitle', 'description', mode='before')
    @classmethod
    def _none_as_empty(cls, value):
        return "" if value is None else value

    def field_text(self, source_field: SourceField) -> str:
        """Return the raw text of a metadata field."""
        return getattr(self, source_field.value)


class TimeSeriesPoint(BaseModel):
    """One observation of a KPI."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    metricName: str = Field(..., min_length=1)
    value: float


class KPISeries(BaseModel):
    """
    Ordered observations of a single metric.

    The engine never mutates a series; the points must share one metricName and
    be ordered by timestamp.
    """
    model_config = ConfigDict(frozen=True)

    metricName: str = Field(..., min_length=1)
    points: Tuple[TimeSeriesPoint, ...] = ()

    @model_validator(mode='after')
    def _check_points(self) -> 'KPISeries':
        previous: Optional[datetime] = None
        for point in self.points:
            if point.metricName != self.metricName:
                raise ValueError(
                    f"point metric '{point.metricName}' does not match series metric '{self.metricName}'"
                )
            if previous is not None and point.timestamp < previous:
                raise ValueError("points must be ordered by timestamp")
            previous = point.timestamp
        return self

    @property
    def values(self) -> List[float]:
        return [point.value for point in self.points]

    @classmethod
    def from_values(
        cls,
        metric_name: str,
        values: List[float],
        start: Optional[datetime] = None,
    ) -> 'KPISeries':
        """Build a daily series from plain values (helper for callers and tests)."""
        from datetime import timedelta

        origin = start or datetime(2025, 1, 1)
        return cls(
            metricName=metric_name,
            points=tuple(
                TimeSeriesPoint(
                    timestamp=origin + timedelta(days=index),
                    metricName=metric_name,
                    value=value,
                )
                for index, value in enumerate(values)
            ),
        )


class AnomalyObservation(BaseModel):
    """
    An observed metric delta to explain.

    Attributes:
        metricName: Metric that moved (e.g. 'downloads').
        observedDelta: Change of that metric, in percent.
        signals: Concurrent deltas of other metrics and context values, by name
            (e.g. {'search_impressions': -14.2, 'days_since_metadata_change': 3}).
        observedOn: Date of the observation, when known.
    """
    model_config = ConfigDict(frozen=True)

    metricName: str = Field(..., min_length=1)
    observedDelta: float
    signals: Dict[str, float] = Field(default_factory=dict)
    observedOn: Optional[DateType] = None


# =============================================================================
# Audit Output Models
# =============================================================================


class Token(BaseModel):
    """A single word extracted from a metadata field, with its classifications."""
    model_config = ConfigDict(frozen=True)

    text: str
    stem: str
    sourceField: SourceField
    position: int = Field(..., ge=0)
    relevanceClass: int = Field(..., ge=0, le=3)
    intentClass: IntentClass = IntentClass.NONE
    isBrand: bool = False
    isStopword: bool = False


class Combo(BaseModel):
    """
    A 2-3 token phrase built from adjacent non-stopword tokens of one field.

    Attributes:
        relevance: Mean relevance class of the member tokens (0-3).
        isGeneric: True when every member token is a registry filler/modifier word.
        isBranded: True when any member token is a brand token.
    """
    model_config = ConfigDict(frozen=True)

    text: str
    tokens: Tuple[str, ...]
    sourceField: SourceField
    position: int = Field(..., ge=0)
    length: int = Field(..., ge=2)
    relevance: float = Field(..., ge=0, le=3)
    intentClass: IntentClass = IntentClass.NONE
    isGeneric: bool = False
    isBranded: bool = False


class DimensionScore(BaseModel):
    """
    Score of one audit dimension.

    Invariants: score is within [0, 100] and gap == 100 - score exactly.
    """
    model_config = ConfigDict(frozen=True)

    name: Dimension
    score: float = Field(..., ge=0, le=100)
    gap: float = Field(..., ge=0, le=100)
    severity: Severity
    band: str = Field(..., description="Score band label, e.g. 'Needs Work'")
    explanationTokens: Tuple[str, ...] = Field(
        default=(),
        description="Tokens / combos that drove the score"
    )
    components: Dict[str, float] = Field(
        default_factory=dict,
        description="Named sub-scores used to compute the score"
    )

    @model_validator(mode='after')
    def _gap_matches_score(self) -> 'DimensionScore':
        if self.gap != 100.0 - self.score:
            raise ValueError("gap must equal 100 - score")
        return self


class AuditReport(BaseModel):
    """
    Result of auditing one MetadataDocument.

    The seven dimension scores are ordered by the registry's dimension_order.
    Tokens and combos carry the full traceability data: every token extracted
    from the document appears in `tokens`.
    """
    model_config = ConfigDict(frozen=True)

    category: str
    resolvedCategory: str
    market: str
    resolvedMarket: str
    engineVersion: str
    registryVersion: str
    overallScore: float = Field(..., ge=0, le=100)
    brandRatio: float = Field(..., ge=0, le=1)
    dimensions: Tuple[DimensionScore, ...]
    tokens: Tuple[Token, ...] = ()
    combos: Tuple[Combo, ...] = ()

    def dimension(self, name: Dimension) -> DimensionScore:
        """Return the score of one dimension."""
        for item in self.dimensions:
            if item.name == name:
                return item
        raise KeyError(name)


class GapItem(BaseModel):
    """Entry of the ranked gap list (largest gap first)."""
    model_config = ConfigDict(frozen=True)

    rank: int = Field(..., ge=1)
    dimension: Dimension
    score: float
    gap: float
    severity: Severity


# =============================================================================
# Intelligence Output Models
# =============================================================================


class StabilityScore(BaseModel):
    """Volatility of one KPI series measured by its coefficient of variation."""
    model_config = ConfigDict(frozen=True)

    metricName: str
    mean: float
    standardDeviation: float = Field(..., ge=0)
    coefficientOfVariation: float = Field(..., ge=0)
    classification: StabilityClass
    stabilityIndex: float = Field(..., ge=0, le=100)
    sampleSize: int = Field(..., ge=2)


class CompositeStability(BaseModel):
    """Weighted stability index across several metrics."""
    model_config = ConfigDict(frozen=True)

    score: float = Field(..., ge=0, le=100)
    interpretation: str
    metricsUsed: Tuple[str, ...]
    weights: Dict[str, float]


class OpportunityItem(BaseModel):
    """Ranked improvement opportunity."""
    model_config = ConfigDict(frozen=True)

    category: str
    label: str
    dimensions: Tuple[Dimension, ...]
    currentValue: float
    gapToTarget: float = Field(..., ge=0)
    severity: Severity
    volatility: Optional[StabilityClass] = None
    priorityScore: float
    priorityRank: int = Field(..., ge=1)
    priority: PriorityLevel
    recommendedAction: str


class ConfidenceBand(BaseModel):
    model_config = ConfigDict(frozen=True)

    lower: float
    upper: float
    stabilityClass: StabilityClass


class SimulationScenario(BaseModel):
    """Projected outcome of a hypothetical improvement."""
    model_config = ConfigDict(frozen=True)

    scenarioName: str
    label: str
    metricName: str
    driverDimension: Dimension
    currentValue: float
    inputDelta: float
    elasticity: float
    projectedOutcome: float
    projectedChange: float
    capped: bool = False
    confidence: ConfidenceLevel
    confidenceBand: Optional[ConfidenceBand] = None


class AnomalyAttribution(BaseModel):
    """
    Explanation of an observed metric delta.

    matchedRuleId is None (and attributed False) when no registry rule matched.
    """
    model_config = ConfigDict(frozen=True)

    metricName: str
    observedDelta: float
    matchedRuleId: Optional[str] = None
    category: Optional[str] = None
    explanation: str
    confidence: float = Field(..., ge=0, le=1)
    attributed: bool


class IntelligenceReport(BaseModel):
    """
    Intelligence bundle built from an AuditReport and historical series.

    Attributes:
        stability: StabilityScore per metric that could be scored.
        unavailableMetrics: metric -> reason code ('insufficient_data',
            'zero_mean') for series that could not be scored.
    """
    model_config = ConfigDict(frozen=True)

    registryVersion: str
    stability: Dict[str, StabilityScore] = Field(default_factory=dict)
    unavailableMetrics: Dict[str, str] = Field(default_factory=dict)
    compositeStability: Optional[CompositeStability] = None
    opportunities: Tuple[OpportunityItem, ...] = ()
    simulations: Tuple[SimulationScenario, ...] = ()
    simulationDisclaimer: str = ""
    attributions: Tuple[AnomalyAttribution, ...] = ()
