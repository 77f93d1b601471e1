"""
Formula Registry schema.

The Formula Registry is the single versioned document holding every threshold,
weight and keyword list the engine consumes. This module defines it as a closed,
typed pydantic v2 schema:

- `extra='forbid'` on every block: unknown keys are configuration defects
- `frozen=True` on every block: a loaded registry is never mutated; a new
  version is a new instance
- nested collections cannot be edited in place either: sequences are tuples
  and mapping fields become MappingProxyType views after validation

Structural problems (missing keys, wrong types) surface as pydantic validation
errors. Cross-field consistency (band overlap, weight sums, template
placeholders...) is checked by aso_engine.services.formula_registry.validate(),
which turns both kinds of problems into Violation records.

Registry documents use snake_case keys, mirroring Settings; the audit output
models in schemas.py use the camelCase JSON contract.
"""

import re
from datetime import date as DateType
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from aso_engine.models.enums import (
    ConditionOperator,
    ConfidenceLevel,
    Dimension,
    IntentClass,
    PriorityMethod,
    RuleMatchMode,
    Severity,
    SourceField,
    StabilityClass,
)


SEMVER_PATTERN = r"^\d+\.\d+\.\d+(?:[-+][0-9A-Za-z.-]+)?$"


def _normalize_terms(values: Iterable[str]) -> FrozenSet[str]:
    """Lowercase and strip registry terms; empty strings are dropped."""
    return frozenset(v.strip().lower() for v in values if v and v.strip())


class RegistryModel(BaseModel):
    """
    Base for all registry blocks: closed and immutable.

    frozen=True only blocks attribute assignment, so mapping fields are
    replaced by read-only views once the block has validated.
    """
    model_config = ConfigDict(frozen=True, extra='forbid')

    @model_validator(mode='after')
    def _freeze_mappings(self):
        for name in type(self).model_fields:
            value = self.__dict__.get(name)
            if isinstance(value, dict):
                self.__dict__[name] = MappingProxyType(value)
        return self

    @field_serializer('*', mode='wrap')
    def _thaw_mappings(self, value: Any, handler):
        if isinstance(value, MappingProxyType):
            value = dict(value)
        return handler(value)


# =============================================================================
# Registry Metadata
# =============================================================================


class ChangelogEntry(RegistryModel):
    """One entry of the registry changelog, newest first."""
    version: str = Field(..., pattern=SEMVER_PATTERN)
    date: DateType
    note: str = Field(..., min_length=1)


# =============================================================================
# Bands
# =============================================================================


class SeverityBand(RegistryModel):
    """
    Gap interval mapped to a severity.

    Intervals are half-open, [min_gap, max_gap), except the band whose max_gap is
    100 which also includes 100.
    """
    severity: Severity
    min_gap: float = Field(..., ge=0, le=100)
    max_gap: float = Field(..., ge=0, le=100)


class ScoreBand(RegistryModel):
    """Score interval mapped to a human label (e.g. 'Needs Work')."""
    label: str = Field(..., min_length=1)
    min_score: float = Field(..., ge=0, le=100)
    max_score: float = Field(..., ge=0, le=100)


# =============================================================================
# Tokenizer, Markets, Relevance, Categories
# =============================================================================


class StemRule(RegistryModel):
    """Suffix rewrite. Rules are tried in order; the first matching suffix wins."""
    suffix: str = Field(..., min_length=1)
    replacement: str = ""


class TokenizerConfig(RegistryModel):
    split_pattern: str = Field(..., min_length=1)
    stem_rules: Tuple[StemRule, ...] = ()
    min_stem_length: int = Field(3, ge=1)

    @field_validator('split_pattern')
    @classmethod
    def _compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"split_pattern does not compile: {exc}") from exc
        return value


class MarketConfig(RegistryModel):
    """
    Market (storefront locale) specific rules.

    Attributes:
        platform: Store platform label (e.g. 'ios', 'android').
        stopwords: Words kept as tokens for traceability but ignored by scoring.
        character_limits: Maximum characters per field on this platform.
    """
    platform: str = Field(..., min_length=1)
    stopwords: FrozenSet[str] = frozenset()
    character_limits: Dict[SourceField, int]

    @field_validator('stopwords', mode='after')
    @classmethod
    def _normalize(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        return _normalize_terms(value)


class RelevanceConfig(RegistryModel):
    """
    Global relevance classes.

    Attributes:
        generic_terms: Filler terms (class 0) such as 'best', 'top', 'new'.
        numeric_class: Class assigned to purely numeric tokens.
        default_class: Class of any token no table mentions (neutral).
    """
    generic_terms: FrozenSet[str]
    numeric_class: int = Field(0, ge=0, le=3)
    default_class: int = Field(1, ge=0, le=3)

    @field_validator('generic_terms', mode='after')
    @classmethod
    def _normalize(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        return _normalize_terms(value)


class MustHaveKeyword(RegistryModel):
    """Keyword every listing of a category is expected to carry."""
    keyword: str = Field(..., min_length=1)
    tier: str = Field(..., min_length=1)

    @field_validator('keyword')
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.strip().lower()


class CategoryConfig(RegistryModel):
    """
    Vocabulary of one app-store category (vertical).

    Attributes:
        label: Display name.
        terms: token -> relevance class (0-3). 3 = category-defining.
        must_have: Keywords checked by the Keyword Coverage dimension.
    """
    label: str
    terms: Dict[str, int]
    must_have: Tuple[MustHaveKeyword, ...]

    @field_validator('terms', mode='after')
    @classmethod
    def _check_terms(cls, value: Dict[str, int]) -> Dict[str, int]:
        normalized: Dict[str, int] = {}
        for term, relevance_class in value.items():
            if relevance_class < 0 or relevance_class > 3:
                raise ValueError(f"relevance class for '{term}' must be within 0-3")
            normalized[term.strip().lower()] = relevance_class
        return normalized


class IntentConfig(RegistryModel):
    """
    Intent keyword sets.

    Attributes:
        priority: Order in which intent classes are tried. A term listed under
            several classes resolves to the first class in this order.
        keywords: Keyword set per intent class. Entries with spaces are phrases
            and are matched against combos.
    """
    priority: Tuple[IntentClass, ...]
    keywords: Dict[IntentClass, FrozenSet[str]]

    @field_validator('keywords', mode='after')
    @classmethod
    def _normalize(cls, value: Dict[IntentClass, FrozenSet[str]]) -> Dict[IntentClass, FrozenSet[str]]:
        return {intent: _normalize_terms(terms) for intent, terms in value.items()}


# =============================================================================
# Dimension Blocks - every block requires `weights`
# =============================================================================


class IntentCoverageConfig(RegistryModel):
    """
    Intent Coverage scoring.

    Attributes:
        weights: Presence weight per intent bucket (sums to weight_total).
        min_presence: Term count at which a bucket counts as fully present.
        balance_penalty: Points removed when a single bucket fully dominates.
        transactional_ceiling: Hard cap on the score when no transactional term
            is present at all.
        fields: Fields whose tokens are classified.
    """
    weights: Dict[IntentClass, float]
    min_presence: Dict[IntentClass, int]
    balance_penalty: float = Field(..., ge=0, le=100)
    transactional_ceiling: float = Field(..., ge=0, le=100)
    fields: Tuple[SourceField, ...]


class KeywordCoverageConfig(RegistryModel):
    """Keyword Coverage scoring. `weights` maps importance tier -> keyword weight."""
    weights: Dict[str, float]


class ComboQualityConfig(RegistryModel):
    """
    Combo Quality scoring.

    Attributes:
        weights: Weight per combo length (2 / 3).
        min_length / max_length: Combo window sizes.
        fields: Fields combos are generated from.
        modifier_terms: Extra filler words (besides relevance generic terms) that
            make a combo generic when it is built only from them.
    """
    weights: Dict[int, float]
    min_length: int = Field(2, ge=2)
    max_length: int = Field(3, ge=2)
    fields: Tuple[SourceField, ...]
    modifier_terms: FrozenSet[str] = frozenset()

    @field_validator('modifier_terms', mode='after')
    @classmethod
    def _normalize(cls, value: FrozenSet[str]) -> FrozenSet[str]:
        return _normalize_terms(value)


class DiscoveryCoverageConfig(RegistryModel):
    """
    Discovery Coverage scoring.

    `weights` has two keys: non_brand_share (1 - brand ratio) and
    non_brand_relevance (mean relevance of non-brand tokens). A zero
    non_brand_share weight stops Discovery from re-counting the brand ratio that
    Brand Balance already scores.
    """
    weights: Dict[str, float]
    fields: Tuple[SourceField, ...]


class RelevanceDimensionConfig(RegistryModel):
    """Relevance scoring. `weights` maps field -> weight (title highest)."""
    weights: Dict[SourceField, float]


class WordCountBand(RegistryModel):
    min_words: int = Field(..., ge=0)
    max_words: int = Field(..., ge=1)


class StructureConfig(RegistryModel):
    """
    Structure scoring.

    Attributes:
        weights: character_utilization / word_count split inside a field.
        field_weights: Weight of each field in the combined score.
        utilization_min / utilization_max: Target utilization band (fractions).
        at_limit_score: Score at exactly 100% utilization.
        word_count_bands: Target word counts per field.
    """
    weights: Dict[str, float]
    field_weights: Dict[SourceField, float]
    utilization_min: float = Field(..., gt=0, le=1)
    utilization_max: float = Field(..., gt=0, le=1)
    at_limit_score: float = Field(..., ge=0, le=100)
    word_count_bands: Dict[SourceField, WordCountBand]


class BrandBalanceConfig(RegistryModel):
    """
    Brand Balance scoring.

    Attributes:
        weights: Fields pooled into the brand ratio (positive weight = pooled).
        target_min_pct / target_max_pct: Target brand ratio band (percent).
        outer_min_pct / outer_max_pct: Ratios at which the score reaches 0.
        min_fragment_length: Shortest token accepted as a fragment of a
            compound brand form.
    """
    weights: Dict[SourceField, float]
    target_min_pct: float = Field(..., ge=0, le=100)
    target_max_pct: float = Field(..., ge=0, le=100)
    outer_min_pct: float
    outer_max_pct: float
    min_fragment_length: int = Field(4, ge=1)


class DimensionsConfig(RegistryModel):
    """One block per audit dimension."""
    intent_coverage: IntentCoverageConfig
    keyword_coverage: KeywordCoverageConfig
    combo_quality: ComboQualityConfig
    discovery_coverage: DiscoveryCoverageConfig
    relevance: RelevanceDimensionConfig
    structure: StructureConfig
    brand_balance: BrandBalanceConfig


# =============================================================================
# Intelligence Layer
# =============================================================================


class StabilityConfig(RegistryModel):
    """
    Stability scoring of KPI series.

    Attributes:
        min_sample_count: Minimum points before CV is computed.
        max_sample_count: Only the newest N points are used.
        stable_max_cv: CV below this is 'stable'.
        moderate_max_cv: CV up to this (inclusive) is 'moderate', above 'volatile'.
        cv_cap: CV at which the 0-100 stability index bottoms out.
        weights: Metric weights of the composite stability index.
        interpretation_bands: Labels for the composite index.
    """
    min_sample_count: int = Field(..., ge=2)
    max_sample_count: int = Field(..., ge=2)
    stable_max_cv: float = Field(..., gt=0)
    moderate_max_cv: float = Field(..., gt=0)
    cv_cap: float = Field(..., gt=0)
    weights: Dict[str, float]
    interpretation_bands: Tuple[ScoreBand, ...] = Field(..., min_length=1)


class OpportunityCategoryConfig(RegistryModel):
    """
    One opportunity category.

    `actions` holds a template per severity. Templates may use {label},
    {current}, {gap}, {target} and {severity}.
    """
    id: str = Field(..., min_length=1)
    label: str
    dimensions: Tuple[Dimension, ...] = Field(..., min_length=1)
    metric: Optional[str] = None
    target: float = Field(100.0, gt=0, le=100)
    actions: Dict[Severity, str]


class PriorityConfig(RegistryModel):
    """
    Opportunity priority function.

    Attributes:
        method: weighted_sum or lexicographic.
        gap_weight / volatility_weight: Coefficients of the weighted sum.
        volatility_scores: 0-100 score per stability class.
        unknown_volatility_score: Score when no series is available.
        high_threshold / medium_threshold: Priority score label cut-offs.
    """
    method: PriorityMethod
    gap_weight: float = Field(..., ge=0)
    volatility_weight: float = Field(..., ge=0)
    volatility_scores: Dict[StabilityClass, float]
    unknown_volatility_score: float = Field(0.0, ge=0, le=100)
    high_threshold: float
    medium_threshold: float


class OpportunityConfig(RegistryModel):
    categories: Tuple[OpportunityCategoryConfig, ...] = Field(..., min_length=1)
    priority: PriorityConfig


class ScenarioConfig(RegistryModel):
    """
    Improvement archetype for the outcome simulator.

    Attributes:
        name: Identifier (e.g. 'keyword_expansion').
        driver: Dimension whose improvement the scenario represents.
        elasticities: target metric -> change in metric units per driver point.
        confidence: Fixed confidence label.
        gap_capture: Share of the driver gap assumed closed by default.
    """
    name: str = Field(..., min_length=1)
    label: str
    driver: Dimension
    elasticities: Dict[str, float]
    confidence: ConfidenceLevel
    gap_capture: float = Field(..., gt=0, le=1)


class MetricCap(RegistryModel):
    min_value: Optional[float] = None
    max_value: Optional[float] = None


class SimulationConfig(RegistryModel):
    scenarios: Tuple[ScenarioConfig, ...] = Field(..., min_length=1)
    band_multipliers: Dict[StabilityClass, float]
    caps: Dict[str, MetricCap] = Field(default_factory=dict)
    max_scenarios: int = Field(..., ge=1)
    disclaimer: str = ""


class RuleCondition(RegistryModel):
    """
    Predicate on one signal.

    `signal` is the name of a concurrent delta or context value; the reserved
    name 'observed' refers to the observed delta itself.
    """
    signal: str = Field(..., min_length=1)
    op: ConditionOperator
    value: float
    upper: Optional[float] = None


class AttributionRule(RegistryModel):
    """
    Ordered anomaly attribution rule.

    Attributes:
        id: Unique rule id.
        category: Attribution category key (see AttributionConfig.categories).
        metrics: Observed metrics the rule applies to (empty = any metric).
        match: all / any of the conditions.
        conditions: Trigger predicates.
        explanation: Template; may use {metric}, {delta}, {date} and
            {signals[name]}.
        confidence: Fixed confidence in [0, 1].
    """
    id: str = Field(..., min_length=1)
    category: str
    metrics: Tuple[str, ...] = ()
    match: RuleMatchMode = RuleMatchMode.ALL
    conditions: Tuple[RuleCondition, ...] = Field(..., min_length=1)
    explanation: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0, le=1)


class AttributionConfig(RegistryModel):
    rules: Tuple[AttributionRule, ...] = Field(..., min_length=1)
    unattributed_explanation: str
    categories: Dict[str, str]


# =============================================================================
# Formula Registry
# =============================================================================


class FormulaRegistry(RegistryModel):
    """
    The versioned, immutable Formula Registry.

    Loaded once per process (or injected in tests) and passed explicitly to
    every engine operation. Never mutated; hot reload swaps the reference (see
    aso_engine.services.formula_registry.RegistryHolder).
    """
    version: str = Field(..., pattern=SEMVER_PATTERN)
    changelog: Tuple[ChangelogEntry, ...] = Field(..., min_length=1)
    weight_total: float = Field(100.0, gt=0)
    precision: int = Field(2, ge=0, le=6)
    dimension_order: Tuple[Dimension, ...]
    dimension_weights: Dict[Dimension, float]
    severity_bands: Tuple[SeverityBand, ...] = Field(..., min_length=1)
    score_bands: Tuple[ScoreBand, ...] = Field(..., min_length=1)
    tokenizer: TokenizerConfig
    markets: Dict[str, MarketConfig] = Field(..., min_length=1)
    default_market: str
    relevance: RelevanceConfig
    categories: Dict[str, CategoryConfig] = Field(..., min_length=1)
    fallback_category: str
    intent: IntentConfig
    dimensions: DimensionsConfig
    stability: StabilityConfig
    opportunities: OpportunityConfig
    simulation: SimulationConfig
    attribution: AttributionConfig

    def get_scenario(self, name: str) -> Optional[ScenarioConfig]:
        """Return the scenario declared under `name`, or None."""
        for scenario in self.simulation.scenarios:
            if scenario.name == name:
                return scenario
        return None
