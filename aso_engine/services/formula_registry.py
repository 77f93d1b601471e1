"""
Formula Registry loading and validation.

The registry is the single source of every threshold, weight and keyword list
the engine uses. This module turns a registry source into a validated, frozen
FormulaRegistry and is the only place configuration errors are raised.

Validation happens in two passes:
1. Structural: the pydantic schema in aso_engine.models.registry (missing keys,
   wrong types, unknown keys).
2. Consistency: cross-field rules the schema cannot express (band coverage,
   weight sums, symmetric brand curve, template placeholders, unique ids...).

Both passes report Violation records; load() raises a ConfigurationError that
carries all of them at once so a broken registry is fixed in one round trip.

The registry is never global state. default_registry() caches the packaged
document per process, and RegistryHolder lets a long-running host swap in a
new version atomically; every engine operation still receives the registry it
should use as an explicit argument.
"""

import json
import logging
import string
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from aso_engine.core.config import Settings, get_settings
from aso_engine.core.errors import ConfigurationError
from aso_engine.models.enums import (
    ConditionOperator,
    Dimension,
    IntentClass,
    RuleMatchMode,
    Severity,
    SourceField,
    StabilityClass,
)
from aso_engine.models.registry import CategoryConfig, FormulaRegistry, MarketConfig, ScoreBand, SeverityBand
from aso_engine.models.schemas import Violation

logger = logging.getLogger(__name__)


RegistrySource = Union[str, Path, Mapping[str, Any], FormulaRegistry]

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent.parent / "registry" / "default_registry.yaml"

# Tolerance used when comparing weight sums against weight_total
WEIGHT_SUM_TOLERANCE = 1e-6

ACTION_PLACEHOLDERS = ("label", "current", "gap", "target", "severity")
EXPLANATION_PLACEHOLDERS = ("metric", "delta", "date", "signals")

SCORED_INTENTS = (IntentClass.INFORMATIONAL, IntentClass.COMMERCIAL, IntentClass.TRANSACTIONAL)


# =============================================================================
# Source Reading
# =============================================================================


def _read_source(source: RegistrySource) -> Any:
    """
    Read a registry source into plain data.

    Accepts a path (.yaml / .yml / .json), a YAML or JSON document string, a
    mapping, or an already-built FormulaRegistry (returned unchanged).
    """
    if isinstance(source, FormulaRegistry):
        return source
    if isinstance(source, Mapping):
        return dict(source)

    if isinstance(source, Path) or (
        isinstance(source, str)
        and "\n" not in source
        and source.lower().endswith((".yaml", ".yml", ".json"))
    ):
        path = Path(source)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)

    # YAML is a superset of JSON, so inline documents of either kind parse here
    return yaml.safe_load(source)


def _pydantic_violations(exc: ValidationError) -> List[Violation]:
    violations = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ())) or "$"
        violations.append(Violation(path=path, message=error.get("msg", "invalid value")))
    return violations


# =============================================================================
# Consistency Checks
# =============================================================================


def _check_weights(
    path: str,
    weights: Mapping[Any, float],
    weight_total: float,
    expected_keys: Optional[Iterable[Any]] = None,
) -> List[Violation]:
    violations = []
    if expected_keys is not None:
        expected = set(expected_keys)
        missing = expected - set(weights)
        extra = set(weights) - expected
        if missing:
            names = sorted(getattr(key, "value", str(key)) for key in missing)
            violations.append(Violation(path=path, message=f"missing weights for {names}"))
        if extra:
            names = sorted(getattr(key, "value", str(key)) for key in extra)
            violations.append(Violation(path=path, message=f"unexpected weight keys {names}"))
    if any(value < 0 for value in weights.values()):
        violations.append(Violation(path=path, message="weights must be non-negative"))
    total = sum(weights.values())
    if abs(total - weight_total) > WEIGHT_SUM_TOLERANCE:
        violations.append(
            Violation(path=path, message=f"weights sum to {total:g}, expected {weight_total:g}")
        )
    return violations


def _check_contiguous(
    path: str,
    intervals: List[Tuple[float, float]],
) -> List[Violation]:
    """Intervals must be non-empty, non-overlapping and together cover [0, 100]."""
    if not intervals:
        return [Violation(path=path, message="bands must not be empty")]
    violations = []
    for low, high in intervals:
        if low >= high:
            violations.append(Violation(path=path, message=f"empty interval [{low:g}, {high:g})"))
    ordered = sorted(intervals)
    if ordered[0][0] != 0:
        violations.append(Violation(path=path, message="bands must start at 0"))
    if ordered[-1][1] != 100:
        violations.append(Violation(path=path, message="bands must end at 100"))
    for (low_a, high_a), (low_b, high_b) in zip(ordered, ordered[1:]):
        if low_b < high_a:
            violations.append(
                Violation(path=path, message=f"bands overlap at [{low_b:g}, {high_a:g})")
            )
        elif low_b > high_a:
            violations.append(
                Violation(path=path, message=f"gap between bands at [{high_a:g}, {low_b:g})")
            )
    return violations


def _check_severity_bands(bands: Tuple[SeverityBand, ...]) -> List[Violation]:
    violations = []
    seen = [band.severity for band in bands]
    for severity in Severity:
        if seen.count(severity) != 1:
            violations.append(
                Violation(path="severity_bands", message=f"severity '{severity.value}' must appear exactly once")
            )
    violations.extend(
        _check_contiguous("severity_bands", [(band.min_gap, band.max_gap) for band in bands])
    )
    return violations


def _check_score_bands(path: str, bands: Tuple[ScoreBand, ...]) -> List[Violation]:
    violations = []
    labels = [band.label for band in bands]
    if len(set(labels)) != len(labels):
        violations.append(Violation(path=path, message="band labels must be unique"))
    violations.extend(_check_contiguous(path, [(band.min_score, band.max_score) for band in bands]))
    return violations


def _placeholder_roots(template: str) -> List[str]:
    roots = []
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name is None:
            continue
        root = field_name.split("[", 1)[0].split(".", 1)[0]
        roots.append(root)
    return roots


def _check_template(path: str, template: str, allowed: Iterable[str], sample: Dict[str, Any]) -> List[Violation]:
    """Reject unknown placeholders, then dry-run the template against sample values."""
    allowed = set(allowed)
    try:
        roots = _placeholder_roots(template)
    except ValueError as exc:
        return [Violation(path=path, message=f"malformed template: {exc}")]

    unknown = sorted({root for root in roots if root not in allowed})
    if unknown:
        return [Violation(path=path, message=f"unknown placeholders {unknown}")]

    try:
        template.format(**sample)
    except (KeyError, IndexError, ValueError, AttributeError, TypeError) as exc:
        return [Violation(path=path, message=f"template cannot be rendered: {exc!r}")]
    return []


def _check_tokenizer_and_markets(registry: FormulaRegistry) -> List[Violation]:
    violations = []
    if registry.default_market not in registry.markets:
        violations.append(
            Violation(path="default_market", message=f"unknown market '{registry.default_market}'")
        )
    for key, market in registry.markets.items():
        for source_field in SourceField:
            limit = market.character_limits.get(source_field)
            if limit is None or limit <= 0:
                violations.append(
                    Violation(
                        path=f"markets.{key}.character_limits",
                        message=f"a positive limit is required for '{source_field.value}'",
                    )
                )
    return violations


def _check_categories(registry: FormulaRegistry) -> List[Violation]:
    violations = []
    if registry.fallback_category not in registry.categories:
        violations.append(
            Violation(path="fallback_category", message=f"unknown category '{registry.fallback_category}'")
        )
    lowered = [key.lower() for key in registry.categories]
    for key in sorted({key for key in lowered if lowered.count(key) > 1}):
        violations.append(
            Violation(path="categories", message=f"category keys differ only by case: '{key}'")
        )
    tiers = registry.dimensions.keyword_coverage.weights
    for key, category in registry.categories.items():
        if not category.must_have:
            violations.append(
                Violation(path=f"categories.{key}.must_have", message="at least one must-have keyword is required")
            )
        for index, keyword in enumerate(category.must_have):
            if keyword.tier not in tiers:
                violations.append(
                    Violation(
                        path=f"categories.{key}.must_have.{index}.tier",
                        message=f"unknown tier '{keyword.tier}'",
                    )
                )
    return violations


def _check_intent(registry: FormulaRegistry) -> List[Violation]:
    violations = []
    priority = registry.intent.priority
    for intent in SCORED_INTENTS:
        if priority.count(intent) != 1:
            violations.append(
                Violation(path="intent.priority", message=f"'{intent.value}' must appear exactly once")
            )
    if IntentClass.NONE in priority or IntentClass.NONE in registry.intent.keywords:
        violations.append(Violation(path="intent", message="'none' is not a keyword class"))

    config = registry.dimensions.intent_coverage
    for intent in SCORED_INTENTS:
        if config.min_presence.get(intent, 0) < 1:
            violations.append(
                Violation(
                    path="dimensions.intent_coverage.min_presence",
                    message=f"'{intent.value}' needs a minimum presence of at least 1",
                )
            )
    return violations


def _check_dimensions(registry: FormulaRegistry) -> List[Violation]:
    total = registry.weight_total
    dims = registry.dimensions
    violations = []

    violations.extend(
        _check_weights("dimensions.intent_coverage.weights", dims.intent_coverage.weights, total, SCORED_INTENTS)
    )
    violations.extend(
        _check_weights("dimensions.keyword_coverage.weights", dims.keyword_coverage.weights, total)
    )

    combo = dims.combo_quality
    if combo.min_length > combo.max_length:
        violations.append(
            Violation(path="dimensions.combo_quality", message="min_length must not exceed max_length")
        )
    violations.extend(
        _check_weights(
            "dimensions.combo_quality.weights",
            combo.weights,
            total,
            range(combo.min_length, combo.max_length + 1),
        )
    )
    violations.extend(
        _check_weights(
            "dimensions.discovery_coverage.weights",
            dims.discovery_coverage.weights,
            total,
            ("non_brand_share", "non_brand_relevance"),
        )
    )
    violations.extend(_check_weights("dimensions.relevance.weights", dims.relevance.weights, total))

    structure = dims.structure
    violations.extend(
        _check_weights(
            "dimensions.structure.weights",
            structure.weights,
            total,
            ("character_utilization", "word_count"),
        )
    )
    violations.extend(
        _check_weights("dimensions.structure.field_weights", structure.field_weights, total)
    )
    if structure.utilization_min >= structure.utilization_max:
        violations.append(
            Violation(path="dimensions.structure", message="utilization_min must be below utilization_max")
        )
    for source_field in structure.field_weights:
        band = structure.word_count_bands.get(source_field)
        if band is None:
            violations.append(
                Violation(
                    path="dimensions.structure.word_count_bands",
                    message=f"missing word count band for '{source_field.value}'",
                )
            )
        elif band.min_words > band.max_words:
            violations.append(
                Violation(
                    path=f"dimensions.structure.word_count_bands.{source_field.value}",
                    message="min_words must not exceed max_words",
                )
            )

    brand = dims.brand_balance
    violations.extend(_check_weights("dimensions.brand_balance.weights", brand.weights, total))
    if brand.target_min_pct > brand.target_max_pct:
        violations.append(
            Violation(path="dimensions.brand_balance", message="target_min_pct must not exceed target_max_pct")
        )
    lower_width = brand.target_min_pct - brand.outer_min_pct
    upper_width = brand.outer_max_pct - brand.target_max_pct
    if lower_width <= 0 or upper_width <= 0:
        violations.append(
            Violation(path="dimensions.brand_balance", message="outer bounds must lie outside the target band")
        )
    elif abs(lower_width - upper_width) > WEIGHT_SUM_TOLERANCE:
        violations.append(
            Violation(
                path="dimensions.brand_balance",
                message=(
                    f"penalty curve must be symmetric: {lower_width:g} points below the band "
                    f"vs {upper_width:g} above"
                ),
            )
        )
    return violations


def _check_intelligence(registry: FormulaRegistry) -> List[Violation]:
    violations = []

    stability = registry.stability
    if stability.stable_max_cv >= stability.moderate_max_cv:
        violations.append(
            Violation(path="stability", message="stable_max_cv must be below moderate_max_cv")
        )
    if stability.min_sample_count > stability.max_sample_count:
        violations.append(
            Violation(path="stability", message="min_sample_count must not exceed max_sample_count")
        )
    violations.extend(_check_weights("stability.weights", stability.weights, registry.weight_total))
    violations.extend(_check_score_bands("stability.interpretation_bands", stability.interpretation_bands))

    opportunities = registry.opportunities
    seen_ids = set()
    for index, category in enumerate(opportunities.categories):
        path = f"opportunities.categories.{index}"
        if category.id in seen_ids:
            violations.append(Violation(path=f"{path}.id", message=f"duplicate category id '{category.id}'"))
        seen_ids.add(category.id)
        for severity in Severity:
            template = category.actions.get(severity)
            if template is None:
                violations.append(
                    Violation(path=f"{path}.actions", message=f"missing action for '{severity.value}'")
                )
                continue
            violations.extend(
                _check_template(
                    f"{path}.actions.{severity.value}",
                    template,
                    ACTION_PLACEHOLDERS,
                    {"label": category.label, "current": 50.0, "gap": 50.0, "target": 100.0, "severity": severity.value},
                )
            )
    priority = opportunities.priority
    if priority.medium_threshold > priority.high_threshold:
        violations.append(
            Violation(path="opportunities.priority", message="medium_threshold must not exceed high_threshold")
        )
    for stability_class in StabilityClass:
        if stability_class not in priority.volatility_scores:
            violations.append(
                Violation(
                    path="opportunities.priority.volatility_scores",
                    message=f"missing score for '{stability_class.value}'",
                )
            )

    simulation = registry.simulation
    names = set()
    for index, scenario in enumerate(simulation.scenarios):
        path = f"simulation.scenarios.{index}"
        if scenario.name in names:
            violations.append(Violation(path=f"{path}.name", message=f"duplicate scenario '{scenario.name}'"))
        names.add(scenario.name)
        if not scenario.elasticities:
            violations.append(Violation(path=f"{path}.elasticities", message="at least one elasticity is required"))
    for stability_class in StabilityClass:
        if stability_class not in simulation.band_multipliers:
            violations.append(
                Violation(
                    path="simulation.band_multipliers",
                    message=f"missing multiplier for '{stability_class.value}'",
                )
            )
    for metric, cap in simulation.caps.items():
        if cap.min_value is not None and cap.max_value is not None and cap.min_value > cap.max_value:
            violations.append(
                Violation(path=f"simulation.caps.{metric}", message="min_value must not exceed max_value")
            )

    violations.extend(_check_attribution(registry))
    return violations


def _check_attribution(registry: FormulaRegistry) -> List[Violation]:
    violations = []
    attribution = registry.attribution
    rule_ids = set()
    for index, rule in enumerate(attribution.rules):
        path = f"attribution.rules.{index}"
        if rule.id in rule_ids:
            violations.append(Violation(path=f"{path}.id", message=f"duplicate rule id '{rule.id}'"))
        rule_ids.add(rule.id)
        if rule.category not in attribution.categories:
            violations.append(
                Violation(path=f"{path}.category", message=f"unknown category '{rule.category}'")
            )
        for cond_index, condition in enumerate(rule.conditions):
            if condition.op == ConditionOperator.BETWEEN:
                if condition.upper is None or condition.upper < condition.value:
                    violations.append(
                        Violation(
                            path=f"{path}.conditions.{cond_index}",
                            message="'between' requires an upper bound not below value",
                        )
                    )

        # Only signals guaranteed present when the rule matches may be rendered
        if rule.match == RuleMatchMode.ALL:
            signals = {c.signal: 1.0 for c in rule.conditions if c.signal != "observed"}
        else:
            signals = {}
        violations.extend(
            _check_template(
                f"{path}.explanation",
                rule.explanation,
                EXPLANATION_PLACEHOLDERS,
                {"metric": "downloads", "delta": -10.0, "date": "2025-01-01", "signals": signals},
            )
        )

    violations.extend(
        _check_template(
            "attribution.unattributed_explanation",
            attribution.unattributed_explanation,
            ("metric", "delta", "date"),
            {"metric": "downloads", "delta": -10.0, "date": "2025-01-01"},
        )
    )
    return violations


def check_consistency(registry: FormulaRegistry) -> List[Violation]:
    """
    Run the cross-field consistency rules on a structurally valid registry.

    Args:
        registry: Registry that already passed schema validation.

    Returns:
        List of violations; empty when the registry is consistent.
    """
    violations: List[Violation] = []

    if registry.changelog[0].version != registry.version:
        violations.append(
            Violation(
                path="changelog.0.version",
                message=f"newest changelog entry is {registry.changelog[0].version}, registry is {registry.version}",
            )
        )

    order = registry.dimension_order
    for dimension in Dimension:
        if order.count(dimension) != 1:
            violations.append(
                Violation(path="dimension_order", message=f"'{dimension.value}' must appear exactly once")
            )
    violations.extend(
        _check_weights("dimension_weights", registry.dimension_weights, registry.weight_total, Dimension)
    )

    violations.extend(_check_severity_bands(registry.severity_bands))
    violations.extend(_check_score_bands("score_bands", registry.score_bands))
    violations.extend(_check_tokenizer_and_markets(registry))
    violations.extend(_check_categories(registry))
    violations.extend(_check_intent(registry))
    violations.extend(_check_dimensions(registry))
    violations.extend(_check_intelligence(registry))
    return violations


# =============================================================================
# Public API
# =============================================================================


def _parse(source: RegistrySource) -> Tuple[Optional[FormulaRegistry], List[Violation]]:
    try:
        data = _read_source(source)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as exc:
        return None, [Violation(path="$", message=f"registry source cannot be read: {exc}")]

    if isinstance(data, FormulaRegistry):
        return data, []
    if not isinstance(data, Mapping):
        return None, [Violation(path="$", message="registry document must be a mapping")]

    try:
        registry = FormulaRegistry.model_validate(data)
    except ValidationError as exc:
        return None, _pydantic_violations(exc)
    return registry, []


def validate(source: RegistrySource) -> List[Violation]:
    """
    Validate a registry source without raising.

    Args:
        source: Path, YAML/JSON string, mapping, or FormulaRegistry.

    Returns:
        All structural and consistency violations (empty list = valid).

    Example:
        >>> violations = validate("my_registry.yaml")
        >>> for v in violations:
        ...     print(v.path, v.message)
    """
    registry, violations = _parse(source)
    if registry is None:
        return violations
    return check_consistency(registry)


def load(source: RegistrySource) -> FormulaRegistry:
    """
    Load and validate a registry.

    Args:
        source: Path, YAML/JSON string, mapping, or FormulaRegistry.

    Returns:
        The validated, frozen FormulaRegistry.

    Raises:
        ConfigurationError: If the source has any violation. The error carries
            the complete violation list.
    """
    registry, violations = _parse(source)
    if registry is not None:
        violations = check_consistency(registry)
    if violations:
        logger.error(f"Formula registry rejected with {len(violations)} violation(s)")
        raise ConfigurationError("Invalid formula registry", violations)

    logger.info(f"Loaded formula registry version {registry.version}")
    return registry


@lru_cache()
def default_registry() -> FormulaRegistry:
    """
    Get the registry shipped with the package.

    Loaded and validated once per process.
    """
    return load(DEFAULT_REGISTRY_PATH)


def load_configured_registry(settings: Optional[Settings] = None) -> FormulaRegistry:
    """Load the registry named by ASO_ENGINE_REGISTRY_PATH, or the packaged default."""
    settings = settings or get_settings()
    if settings.registry_path:
        return load(Path(settings.registry_path))
    return default_registry()


class RegistryHolder:
    """
    Atomic reference to the registry in use by a long-running host.

    swap() replaces the reference under a lock. Callers that already obtained a
    registry through current() keep using that instance, so an in-flight audit
    is never evaluated against two registry versions.
    """

    def __init__(self, registry: FormulaRegistry):
        self._lock = threading.Lock()
        self._registry = registry

    def current(self) -> FormulaRegistry:
        with self._lock:
            return self._registry

    def swap(self, source: RegistrySource) -> FormulaRegistry:
        """
        Validate a new registry and make it current.

        Raises:
            ConfigurationError: If the new registry is invalid; the current
                registry stays in place.
        """
        new_registry = load(source)
        with self._lock:
            previous = self._registry
            self._registry = new_registry
        logger.info(f"Formula registry swapped: {previous.version} -> {new_registry.version}")
        return previous


# =============================================================================
# Market / Category Resolution
# =============================================================================


def resolve_market(registry: FormulaRegistry, market: str) -> Tuple[str, MarketConfig]:
    """Return (key, config) for a market, falling back to default_market."""
    key = (market or "").strip()
    if key in registry.markets:
        return key, registry.markets[key]
    lowered = key.lower()
    for candidate, config in registry.markets.items():
        if candidate.lower() == lowered:
            return candidate, config
    logger.warning(f"Unknown market '{market}', using default market '{registry.default_market}'")
    return registry.default_market, registry.markets[registry.default_market]


def resolve_category(registry: FormulaRegistry, category: str) -> Tuple[str, CategoryConfig]:
    """Return (key, config) for a category, falling back to fallback_category."""
    key = (category or "").strip()
    if key in registry.categories:
        return key, registry.categories[key]
    lowered = key.lower()
    for candidate, config in registry.categories.items():
        if candidate.lower() == lowered:
            return candidate, config
    logger.warning(f"Unknown category '{category}', using fallback category '{registry.fallback_category}'")
    return registry.fallback_category, registry.categories[registry.fallback_category]
