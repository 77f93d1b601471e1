"""
Core infrastructure package for the ASO metadata engine.

Provides:
- Process settings via pydantic-settings
- The engine error taxonomy

This module re-exports key components from submodules for convenient importing:

    from aso_engine.core import get_settings, ConfigurationError

Components Re-exported:
    Settings: Pydantic settings class (registry path, logging)
    get_settings: Function returning the cached Settings singleton
    EngineError: Base class of all engine errors
    ConfigurationError: Invalid registry, carries the violation list
    UnknownScenarioError: Simulation requested for an undeclared scenario
    InsufficientDataError: KPI series shorter than the registry minimum
    UndefinedStabilityError: KPI series with a zero mean
    SeriesValidationError: Tabular KPI input failed validation
"""

# =============================================================================
# Re-exports from aso_engine.core.config
# =============================================================================
from aso_engine.core.config import Settings, get_settings

# =============================================================================
# Re-exports from aso_engine.core.errors
# =============================================================================
from aso_engine.core.errors import (
    EngineError,
    ConfigurationError,
    UnknownScenarioError,
    InsufficientDataError,
    UndefinedStabilityError,
    SeriesValidationError,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Error taxonomy (from errors.py)
    'EngineError',
    'ConfigurationError',
    'UnknownScenarioError',
    'InsufficientDataError',
    'UndefinedStabilityError',
    'SeriesValidationError',
]
