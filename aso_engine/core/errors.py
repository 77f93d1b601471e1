"""
Error taxonomy for the ASO metadata engine.

Every failure path of the engine raises one of these types so callers can tell
configuration defects apart from data that is simply not ready yet:

- ConfigurationError: malformed or incomplete Formula Registry. Fatal, raised
  before any audit runs. Carries the full list of violations.
- UnknownScenarioError: a simulation was requested for a scenario (or
  scenario/metric pair) the registry does not declare. A wiring error.
- InsufficientDataError: a KPI series is shorter than the registry minimum.
  Recoverable once more data accrues.
- UndefinedStabilityError: a KPI series has a zero mean, so the coefficient of
  variation is undefined. Callers should treat the metric as "not applicable".
- SeriesValidationError: tabular KPI input failed column/type/grain checks.

The scorers and the tokenizer never raise for well-formed documents.
"""

from typing import List, Optional, Sequence


class EngineError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(EngineError, ValueError):
    """
    The Formula Registry (or a request against it) is invalid.

    Attributes:
        violations: Structured violations that caused the failure. Empty when
            the error is not the result of a validate() pass.
    """

    def __init__(self, message: str, violations: Optional[Sequence] = None):
        super().__init__(message)
        self.violations: List = list(violations or [])

    def __str__(self) -> str:
        base = super().__str__()
        if not self.violations:
            return base
        details = "; ".join(f"{v.path}: {v.message}" for v in self.violations[:10])
        more = len(self.violations) - 10
        if more > 0:
            details += f"; ... {more} more"
        return f"{base} ({details})"


class UnknownScenarioError(ConfigurationError):
    """Simulation requested for a scenario or metric the registry does not declare."""


class InsufficientDataError(EngineError):
    """
    A KPI series has fewer points than the registry-declared minimum.

    Attributes:
        metric_name: Metric of the offending series.
        sample_size: Number of points supplied.
        required: Minimum number of points the registry requires.
    """

    reason_code = "insufficient_data"

    def __init__(self, metric_name: str, sample_size: int, required: int):
        super().__init__(
            f"Series '{metric_name}' has {sample_size} points; "
            f"at least {required} are required"
        )
        self.metric_name = metric_name
        self.sample_size = sample_size
        self.required = required


class UndefinedStabilityError(EngineError):
    """The coefficient of variation is undefined because the series mean is zero."""

    reason_code = "zero_mean"

    def __init__(self, metric_name: str):
        super().__init__(
            f"Series '{metric_name}' has a zero mean; coefficient of variation is undefined"
        )
        self.metric_name = metric_name


class SeriesValidationError(EngineError, ValueError):
    """Tabular KPI input failed validation."""

    def __init__(self, message: str, violations: Optional[Sequence] = None):
        super().__init__(message)
        self.violations: List = list(violations or [])
