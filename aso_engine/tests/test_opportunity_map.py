"""
Opportunity Map Test Module

Tests for aso_engine/services/opportunity_map.py:
- One ranked item per registry opportunity category
- Weighted-sum priority combining gap and KPI volatility
- Lexicographic priority where volatility only breaks ties
- Action templates rendered per severity
"""

import pytest

from aso_engine.models import Dimension, PriorityLevel, Severity, StabilityClass
from aso_engine.services.audit_engine import audit_metadata
from aso_engine.services.opportunity_map import build_opportunity_map, priority_level
from aso_engine.services.stability import calculate_stability
from aso_engine.tests.conftest import make_series


@pytest.fixture
def filler_report(registry, filler_document):
    return audit_metadata(filler_document, registry)


@pytest.fixture
def stability(registry):
    """Steady impressions, volatile direct share."""
    return {
        "impressions": calculate_stability(make_series("impressions", [100, 101, 99, 100]), registry),
        "direct_share": calculate_stability(make_series("direct_share", [10, 30, 5, 25, 8, 35, 12]), registry),
    }


class TestOpportunityMap:

    def test_one_item_per_category(self, registry, filler_report):
        items = build_opportunity_map(filler_report, registry)

        assert len(items) == 8
        assert sorted(item.category for item in items) == sorted(c.id for c in registry.opportunities.categories)
        assert [item.priorityRank for item in items] == list(range(1, 9))

    def test_sorted_by_priority(self, registry, filler_report):
        scores = [item.priorityScore for item in build_opportunity_map(filler_report, registry)]
        assert scores == sorted(scores, reverse=True)

    def test_keyword_gap_drives_priority(self, registry, filler_report):
        """Keyword Coverage 0 -> gap 100 -> 0.8 * 100 with unknown volatility."""
        top = build_opportunity_map(filler_report, registry)[0]

        assert top.category == "keyword_coverage"
        assert top.gapToTarget == 100.0
        assert top.severity == Severity.CRITICAL
        assert top.priorityScore == pytest.approx(80.0)
        assert top.priority == PriorityLevel.HIGH
        assert top.volatility is None
        assert "100 points to target" in top.recommendedAction

    def test_multi_dimension_category_averages(self, registry, filler_report):
        items = {item.category: item for item in build_opportunity_map(filler_report, registry)}
        expected = (
            filler_report.dimension(Dimension.INTENT_COVERAGE).score
            + filler_report.dimension(Dimension.STRUCTURE).score
        ) / 2

        assert items["conversion_readiness"].currentValue == pytest.approx(expected, abs=0.01)

    def test_volatility_raises_priority(self, registry, filler_report, stability):
        """
        Keyword Coverage and Brand Positioning both have gap 100; the volatile
        direct share puts Brand Positioning first.
        """
        items = build_opportunity_map(filler_report, registry, stability)
        by_category = {item.category: item for item in items}

        assert items[0].category == "brand_positioning"
        assert by_category["brand_positioning"].volatility == StabilityClass.VOLATILE
        assert by_category["brand_positioning"].priorityScore == pytest.approx(100.0)
        assert by_category["keyword_coverage"].volatility == StabilityClass.STABLE
        assert by_category["keyword_coverage"].priorityScore == pytest.approx(80.0)

    def test_deterministic(self, registry, filler_report, stability):
        first = build_opportunity_map(filler_report, registry, stability)
        second = build_opportunity_map(filler_report, registry, stability)
        assert first == second


@pytest.mark.registry
class TestLexicographicPriority:

    @pytest.fixture
    def lexicographic(self, registry_with):
        def modify(data):
            data["opportunities"]["priority"]["method"] = "lexicographic"

        return registry_with(modify)

    def test_gap_orders_and_volatility_breaks_ties(self, lexicographic, filler_document, stability):
        report = audit_metadata(filler_document, lexicographic)
        items = build_opportunity_map(report, lexicographic, stability)

        gaps = [item.gapToTarget for item in items]
        assert gaps == sorted(gaps, reverse=True)
        assert all(item.priorityScore == item.gapToTarget for item in items)
        # equal gaps of 100: the volatile metric wins the tie
        assert items[0].category == "brand_positioning"
        assert items[1].category == "keyword_coverage"


class TestPriorityLevel:

    @pytest.mark.parametrize("score, expected", [
        (100.0, PriorityLevel.HIGH),
        (70.0, PriorityLevel.HIGH),
        (69.9, PriorityLevel.MEDIUM),
        (40.0, PriorityLevel.MEDIUM),
        (39.9, PriorityLevel.LOW),
        (0.0, PriorityLevel.LOW),
    ])
    def test_thresholds(self, registry, score, expected):
        assert priority_level(score, registry) == expected
