"""
Pytest Configuration and Shared Fixtures for ASO Metadata Engine Tests.

This module provides fixtures and configuration for all engine tests:
- The packaged default registry, and a factory for modified registries
- Reference metadata documents (well-formed, filler-only, brand-only)
- Synthetic KPI series helpers

Every engine function receives its registry explicitly, so tests never touch
process-wide state; modified registries are built from a fresh copy of the
packaged YAML document for each test.
"""

import copy
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytest
import yaml

from aso_engine.models import FormulaRegistry, KPISeries, MetadataDocument, TimeSeriesPoint
from aso_engine.services.formula_registry import DEFAULT_REGISTRY_PATH, default_registry, load


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Configure custom pytest markers for test organization.

    Custom markers defined:
    - scenario: reference scenarios the engine must reproduce exactly
    - registry: tests that build modified registries

    Usage:
        pytest -m scenario
    """
    config.addinivalue_line(
        'markers',
        'scenario: reference audit / intelligence scenarios'
    )
    config.addinivalue_line(
        'markers',
        'registry: tests that load modified formula registries'
    )


# ============================================================
# REGISTRY FIXTURES
# ============================================================

@pytest.fixture(scope='session')
def packaged_registry_data() -> Dict[str, Any]:
    """Raw data of the packaged registry document (never mutate; copy first)."""
    return yaml.safe_load(DEFAULT_REGISTRY_PATH.read_text(encoding='utf-8'))


@pytest.fixture
def registry_data(packaged_registry_data) -> Dict[str, Any]:
    """
    Fresh deep copy of the packaged registry data.

    Tests mutate this dict to build invalid or alternative registries.
    """
    return copy.deepcopy(packaged_registry_data)


@pytest.fixture(scope='session')
def registry() -> FormulaRegistry:
    """The validated default registry shipped with the package."""
    return default_registry()


@pytest.fixture
def registry_with(packaged_registry_data) -> Callable[[Callable[[Dict[str, Any]], None]], FormulaRegistry]:
    """
    Factory building a registry from a modified copy of the packaged data.

    Usage:
        def test_something(registry_with):
            def modify(data):
                data['dimensions']['discovery_coverage']['weights'] = {...}
            registry = registry_with(modify)
    """
    def _build(modify: Callable[[Dict[str, Any]], None]) -> FormulaRegistry:
        data = copy.deepcopy(packaged_registry_data)
        modify(data)
        return load(data)

    return _build


# ============================================================
# DOCUMENT FIXTURES
# ============================================================

@pytest.fixture
def language_app_document() -> MetadataDocument:
    """A reasonably optimized education listing."""
    return MetadataDocument(
        title="Lingo: Learn Spanish & French",
        subtitle="Speak a new language daily",
        description=(
            "Learn Spanish, French and German with short daily lessons. "
            "Practice vocabulary and grammar, study at your own pace and "
            "download Lingo to start speaking today."
        ),
        category="education",
        market="us",
        brandNames=("Lingo",),
    )


@pytest.fixture
def filler_document() -> MetadataDocument:
    """Title made of filler words only; no subtitle or description."""
    return MetadataDocument(
        title="Best Top Language App - Great Lessons Free",
        category="education",
        market="us",
    )


@pytest.fixture
def brand_only_document() -> MetadataDocument:
    """Title and subtitle repeating the brand five times, nothing else."""
    return MetadataDocument(
        title="Lingo Lingo Lingo",
        subtitle="Lingo Lingo",
        category="education",
        market="us",
        brandNames=("Lingo",),
    )


# ============================================================
# SERIES HELPERS
# ============================================================

SERIES_START = datetime(2025, 5, 1)


def make_series(metric_name: str, values: List[float], start: Optional[datetime] = None) -> KPISeries:
    """Build a daily KPISeries from plain values."""
    origin = start or SERIES_START
    return KPISeries(
        metricName=metric_name,
        points=tuple(
            TimeSeriesPoint(timestamp=origin + timedelta(days=i), metricName=metric_name, value=v)
            for i, v in enumerate(values)
        ),
    )


@pytest.fixture
def kpi_series() -> Dict[str, KPISeries]:
    """
    A small KPI history covering every metric the default registry uses.

    - impressions: steady (CV well below 0.15)
    - downloads: moderate swings
    - conversion_rate / tap_through_rate / search_impression_share: steady
    - direct_share: volatile
    """
    return {
        'impressions': make_series('impressions', [10000, 10200, 9900, 10100, 10050, 9950, 10000]),
        'downloads': make_series('downloads', [400, 520, 310, 450, 600, 350, 480]),
        'conversion_rate': make_series('conversion_rate', [4.0, 4.1, 3.9, 4.0, 4.2, 3.8, 4.0]),
        'tap_through_rate': make_series('tap_through_rate', [8.0, 8.2, 7.9, 8.1, 8.0, 7.8, 8.0]),
        'search_impression_share': make_series('search_impression_share', [60, 61, 59, 60, 62, 58, 60]),
        'direct_share': make_series('direct_share', [10, 30, 5, 25, 8, 35, 12]),
    }
