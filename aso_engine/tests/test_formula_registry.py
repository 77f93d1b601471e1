"""
Formula Registry Test Module

Tests for aso_engine/services/formula_registry.py:
- The packaged registry loads and is internally consistent
- Structural violations (missing weights, unknown keys) are reported, not raised
- Consistency violations (band overlap, weight sums, asymmetric brand curve,
  bad templates, duplicate ids)
- load() raises ConfigurationError carrying every violation
- Loaded registries are immutable; RegistryHolder swaps atomically
- Market and category fallbacks
"""

import json
import logging

import pytest
from pydantic import ValidationError

from aso_engine.core.errors import ConfigurationError
from aso_engine.models import FormulaRegistry, SourceField
from aso_engine.services.formula_registry import (
    RegistryHolder,
    check_consistency,
    default_registry,
    load,
    resolve_category,
    resolve_market,
    validate,
)


def _paths(violations):
    return [violation.path for violation in violations]


# =============================================================================
# Packaged Registry
# =============================================================================


class TestPackagedRegistry:
    """The registry shipped with the package."""

    def test_packaged_registry_is_valid(self, registry_data):
        """validate() finds nothing wrong with the packaged document."""
        assert validate(registry_data) == []

    def test_default_registry_is_cached(self):
        """default_registry() loads once per process."""
        assert default_registry() is default_registry()

    def test_version_and_changelog(self, registry):
        """Version is semver and matches the newest changelog entry."""
        assert registry.version == "2.0.0"
        assert registry.changelog[0].version == registry.version

    def test_declares_eight_opportunity_categories(self, registry):
        assert len(registry.opportunities.categories) == 8

    def test_declares_four_scenarios(self, registry):
        names = [scenario.name for scenario in registry.simulation.scenarios]
        assert names == ["keyword_expansion", "brand_rebalance", "intent_alignment", "structure_optimization"]

    def test_declares_eleven_ordered_rules(self, registry):
        assert len(registry.attribution.rules) == 11
        assert registry.attribution.rules[0].id == "metadata_update_loss"

    def test_default_severity_boundaries(self, registry):
        bands = {band.severity.value: (band.min_gap, band.max_gap) for band in registry.severity_bands}
        assert bands == {
            "critical": (40, 100),
            "significant": (25, 40),
            "moderate": (15, 25),
            "minor": (0, 15),
        }


# =============================================================================
# Structural Validation
# =============================================================================


class TestStructuralValidation:
    """Schema-level problems become violations."""

    def test_missing_dimension_weights_is_reported(self, registry_data):
        """A dimension without its weights field yields a violation."""
        del registry_data["dimensions"]["relevance"]["weights"]

        violations = validate(registry_data)

        assert violations
        assert "dimensions.relevance.weights" in _paths(violations)

    def test_missing_dimension_weights_fails_load(self, registry_data):
        """load() refuses the same registry and carries the violations."""
        del registry_data["dimensions"]["combo_quality"]["weights"]

        with pytest.raises(ConfigurationError) as exc_info:
            load(registry_data)

        assert "dimensions.combo_quality.weights" in _paths(exc_info.value.violations)

    def test_unknown_key_is_rejected(self, registry_data):
        """The schema is closed."""
        registry_data["dimensions"]["structure"]["bonus"] = 5

        assert "dimensions.structure.bonus" in _paths(validate(registry_data))

    def test_relevance_class_out_of_range(self, registry_data):
        registry_data["categories"]["education"]["terms"]["language"] = 4

        assert validate(registry_data)

    def test_empty_interpretation_bands_is_reported(self, registry_data):
        """An empty band list is a violation, never a crash."""
        registry_data["stability"]["interpretation_bands"] = []

        assert "stability.interpretation_bands" in _paths(validate(registry_data))
        with pytest.raises(ConfigurationError):
            load(registry_data)

    def test_non_mapping_document(self):
        violations = validate("- just\n- a list\n")

        assert _paths(violations) == ["$"]

    def test_missing_file(self, tmp_path):
        violations = validate(tmp_path / "missing.yaml")

        assert len(violations) == 1
        assert "cannot be read" in violations[0].message


# =============================================================================
# Consistency Validation
# =============================================================================


@pytest.mark.registry
class TestConsistencyValidation:
    """Cross-field rules the schema cannot express."""

    def test_overlapping_severity_bands(self, registry_data):
        registry_data["severity_bands"][1]["max_gap"] = 45

        violations = validate(registry_data)

        assert any("overlap" in v.message for v in violations)

    def test_severity_bands_must_cover_range(self, registry_data):
        registry_data["severity_bands"][3]["min_gap"] = 5

        violations = validate(registry_data)

        assert any("start at 0" in v.message for v in violations)

    def test_weights_must_sum_to_total(self, registry_data):
        registry_data["dimensions"]["relevance"]["weights"]["title"] = 60

        violations = validate(registry_data)

        assert "dimensions.relevance.weights" in _paths(violations)

    def test_dimension_order_lists_every_dimension(self, registry_data):
        registry_data["dimension_order"] = registry_data["dimension_order"][:-1]

        assert "dimension_order" in _paths(validate(registry_data))

    def test_asymmetric_brand_curve_rejected(self, registry_data):
        """Outer bounds must sit equally far from both ends of the target band."""
        registry_data["dimensions"]["brand_balance"]["outer_max_pct"] = 60

        violations = validate(registry_data)

        assert any("symmetric" in v.message for v in violations)

    def test_unknown_template_placeholder(self, registry_data):
        registry_data["opportunities"]["categories"][0]["actions"]["minor"] = "Fix {dimension}"

        violations = validate(registry_data)

        assert "opportunities.categories.0.actions.minor" in _paths(violations)

    def test_any_mode_rule_cannot_render_signals(self, registry_data):
        """Signals of an any-mode rule are not guaranteed present, so templates may not use them."""
        rule = registry_data["attribution"]["rules"][-1]
        assert rule["match"] == "any"
        rule["explanation"] = "Shift {signals[search_browse_ratio_shift]}"

        assert "attribution.rules.10.explanation" in _paths(validate(registry_data))

    def test_duplicate_rule_ids(self, registry_data):
        registry_data["attribution"]["rules"][1]["id"] = registry_data["attribution"]["rules"][0]["id"]

        assert "attribution.rules.1.id" in _paths(validate(registry_data))

    def test_changelog_head_must_match_version(self, registry_data):
        registry_data["version"] = "2.1.0"

        assert "changelog.0.version" in _paths(validate(registry_data))

    def test_unknown_fallback_category(self, registry_data):
        registry_data["fallback_category"] = "games"

        assert "fallback_category" in _paths(validate(registry_data))

    def test_all_violations_reported_together(self, registry_data):
        """A broken registry is fixed in one round trip."""
        registry_data["dimensions"]["relevance"]["weights"]["title"] = 60
        registry_data["fallback_category"] = "games"

        with pytest.raises(ConfigurationError) as exc_info:
            load(registry_data)

        paths = _paths(exc_info.value.violations)
        assert "dimensions.relevance.weights" in paths
        assert "fallback_category" in paths

    def test_check_consistency_on_valid_registry(self, registry):
        assert check_consistency(registry) == []


# =============================================================================
# Sources
# =============================================================================


class TestSources:
    """load() accepts paths, document strings, mappings and registries."""

    def test_load_json_file(self, registry_data, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text(json.dumps(registry_data, default=str), encoding="utf-8")

        assert load(path).version == "2.0.0"

    def test_load_yaml_string(self, registry_data):
        import yaml

        assert load(yaml.safe_dump(registry_data)).version == "2.0.0"

    def test_load_registry_instance(self, registry):
        assert load(registry) is registry


# =============================================================================
# Immutability and Hot Swap
# =============================================================================


class TestImmutability:
    """A loaded registry never changes."""

    def test_registry_is_frozen(self, registry):
        with pytest.raises(ValidationError):
            registry.version = "9.9.9"

    def test_nested_blocks_are_frozen(self, registry):
        with pytest.raises(ValidationError):
            registry.dimensions.brand_balance.target_min_pct = 0

    def test_nested_mappings_are_read_only(self, registry):
        with pytest.raises(TypeError):
            registry.categories["education"].terms["best"] = 3
        with pytest.raises(TypeError):
            registry.markets["us"].character_limits[SourceField.TITLE] = 100
        with pytest.raises(AttributeError):
            registry.dimensions.relevance.weights.clear()

        assert "best" not in registry.categories["education"].terms

    def test_read_only_registry_still_serializes(self, registry):
        data = registry.model_dump(mode="json")

        assert data["dimensions"]["relevance"]["weights"] == {"title": 50, "subtitle": 30, "description": 20}
        assert load(data).version == registry.version

    def test_holder_swap_keeps_previous_instance(self, registry, registry_data):
        """In-flight callers keep the registry they already obtained."""
        holder = RegistryHolder(registry)
        in_flight = holder.current()

        registry_data["version"] = "2.0.1"
        registry_data["changelog"].insert(0, {"version": "2.0.1", "date": "2025-07-01", "note": "Tweak"})
        previous = holder.swap(registry_data)

        assert previous is registry
        assert in_flight.version == "2.0.0"
        assert holder.current().version == "2.0.1"

    def test_holder_rejects_invalid_registry(self, registry, registry_data):
        holder = RegistryHolder(registry)
        del registry_data["dimensions"]["relevance"]["weights"]

        with pytest.raises(ConfigurationError):
            holder.swap(registry_data)

        assert holder.current() is registry


# =============================================================================
# Market / Category Resolution
# =============================================================================


class TestResolution:

    def test_known_market(self, registry):
        key, market = resolve_market(registry, "us")
        assert key == "us"
        assert market.character_limits[next(iter(market.character_limits))] > 0

    def test_unknown_market_falls_back(self, registry, caplog):
        with caplog.at_level(logging.WARNING):
            key, _ = resolve_market(registry, "zz")
        assert key == registry.default_market
        assert "Unknown market" in caplog.text

    def test_unknown_category_falls_back_with_warning(self, registry, caplog):
        with caplog.at_level(logging.WARNING):
            key, category = resolve_category(registry, "Games")
        assert key == "general"
        assert category is registry.categories["general"]
        assert "Unknown category" in caplog.text

    def test_category_lookup_is_case_insensitive(self, registry):
        key, _ = resolve_category(registry, "Education")
        assert key == "education"

    @pytest.mark.registry
    def test_mixed_case_registry_key_resolves(self, registry_with):
        def modify(data):
            data["categories"]["Health_Fitness"] = data["categories"].pop("health_fitness")

        registry = registry_with(modify)
        key, category = resolve_category(registry, "health_fitness")

        assert key == "Health_Fitness"
        assert category is registry.categories["Health_Fitness"]

    def test_category_keys_differing_by_case_rejected(self, registry_data):
        registry_data["categories"]["Education"] = registry_data["categories"]["education"]

        violations = validate(registry_data)

        assert any("differ only by case" in v.message for v in violations)
