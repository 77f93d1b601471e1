"""
Enumeration definitions for the ASO metadata engine.

All enums inherit from both `str` and `Enum` to ensure JSON serialization
compatibility with Pydantic models and to let registry documents refer to them
by their plain string values (e.g. "brand_balance", "critical").

Registry-defined vocabularies that may grow between registry versions
(opportunity categories, simulation scenarios, attribution rule ids, KPI metric
names) are deliberately NOT enums: they are strings validated against the
registry that is in use.
"""

from enum import Enum


class Dimension(str, Enum):
    """
    The seven audit dimensions.

    Every dimension is scored 0-100 by an independent scorer in
    aso_engine.services.dimension_scorers. The order in which they are reported
    (and the tie-break order of the gap ranking) is not this enum's order but
    the registry's `dimension_order`.
    """
    INTENT_COVERAGE = "intent_coverage"
    KEYWORD_COVERAGE = "keyword_coverage"
    COMBO_QUALITY = "combo_quality"
    DISCOVERY_COVERAGE = "discovery_coverage"
    RELEVANCE = "relevance"
    STRUCTURE = "structure"
    BRAND_BALANCE = "brand_balance"


class SourceField(str, Enum):
    """
    Metadata field a token or combo was extracted from.

    Title and subtitle are ranking fields on the App Store; the description is
    indexed on Google Play and read by users on both stores.
    """
    TITLE = "title"
    SUBTITLE = "subtitle"
    DESCRIPTION = "description"


class IntentClass(str, Enum):
    """
    Search intent bucket of a token or combo.

    - informational: learning / discovery ("learn", "guide", "how to")
    - commercial: comparison / evaluation ("best", "compare", "review")
    - transactional: action / download ("download", "get", "sign up")
    - none: no registry intent keyword matched
    """
    INFORMATIONAL = "informational"
    COMMERCIAL = "commercial"
    TRANSACTIONAL = "transactional"
    NONE = "none"


class Severity(str, Enum):
    """
    Gap severity band.

    Default boundaries (registry data, not constants):
    - critical: gap >= 40
    - significant: 25 <= gap < 40
    - moderate: 15 <= gap < 25
    - minor: gap < 15
    """
    CRITICAL = "critical"
    SIGNIFICANT = "significant"
    MODERATE = "moderate"
    MINOR = "minor"


class StabilityClass(str, Enum):
    """
    Volatility classification of a KPI series by coefficient of variation.
    """
    STABLE = "stable"
    MODERATE = "moderate"
    VOLATILE = "volatile"


class PriorityLevel(str, Enum):
    """Priority label of an opportunity derived from its priority score."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConfidenceLevel(str, Enum):
    """Confidence label attached to simulation scenarios."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PriorityMethod(str, Enum):
    """
    How the opportunity map combines gap size and volatility.

    - weighted_sum: gap_weight * gap + volatility_weight * volatility_score
    - lexicographic: order by gap first, volatility only breaks ties
    """
    WEIGHTED_SUM = "weighted_sum"
    LEXICOGRAPHIC = "lexicographic"


class ConditionOperator(str, Enum):
    """
    Comparison operators available to anomaly attribution rule conditions.

    - lt / lte / gt / gte: compare the signal against `value`
    - abs_lt / abs_lte: compare the absolute signal against `value`
    - between: inclusive range check against `value` and `upper`
    """
    LT = "lt"
    LTE = "lte"
    GT = "gt"
    GTE = "gte"
    ABS_LT = "abs_lt"
    ABS_LTE = "abs_lte"
    BETWEEN = "between"


class RuleMatchMode(str, Enum):
    """Whether all or any of a rule's conditions must hold."""
    ALL = "all"
    ANY = "any"
