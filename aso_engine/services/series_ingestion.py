"""
KPI Series Ingestion.

Turns tabular KPI exports (warehouse extracts, console CSV downloads) into
validated KPISeries, one per metric.

Expected long format:

    timestamp            metric_name         value
    2025-05-01           impressions         10234
    2025-05-01           conversion_rate     4.1
    2025-05-02           impressions         9876
    ...

Validation (all problems are collected before failing):
- required columns present (case-insensitive)
- timestamps parseable
- values numeric and present
- metric names non-empty
- grain unique: one row per (metric_name, timestamp)

Rows are sorted by timestamp inside each metric, so callers may pass unordered
extracts.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

import pandas as pd

from aso_engine.core.errors import SeriesValidationError
from aso_engine.models.schemas import KPISeries, TimeSeriesPoint, Violation

logger = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

REQUIRED_COLUMNS: List[str] = ['timestamp', 'metric_name', 'value']

SERIES_GRAIN: List[str] = ['metric_name', 'timestamp']

# Number of offending rows quoted in a violation message
MAX_REPORTED_ROWS: int = 5


def _normalized(df: pd.DataFrame) -> pd.DataFrame:
    df_lower = df.copy()
    df_lower.columns = [str(col).strip().lower() for col in df_lower.columns]
    return df_lower


# =============================================================================
# VALIDATION FUNCTIONS
# =============================================================================

def validate_columns(df: pd.DataFrame) -> List[Violation]:
    """
    Validate that all required columns are present.

    Args:
        df: The pandas DataFrame to validate

    Returns:
        List of Violation objects for any missing columns
    """
    present = {str(col).strip().lower() for col in df.columns}
    return [
        Violation(path=col, message=f"Required column '{col}' is missing")
        for col in REQUIRED_COLUMNS
        if col not in present
    ]


def validate_data_types(df: pd.DataFrame) -> List[Violation]:
    """
    Validate timestamps, values and metric names.

    Args:
        df: The pandas DataFrame to validate (required columns present)

    Returns:
        List of Violation objects for any type issues
    """
    violations: List[Violation] = []
    df_lower = _normalized(df)

    timestamps = pd.to_datetime(df_lower['timestamp'], errors='coerce')
    invalid_mask = timestamps.isna()
    if invalid_mask.any():
        rows = df_lower[invalid_mask].index.tolist()[:MAX_REPORTED_ROWS]
        violations.append(Violation(
            path='timestamp',
            message=f"Found {int(invalid_mask.sum())} invalid timestamps. First invalid rows at indices: {rows}",
        ))

    values = pd.to_numeric(df_lower['value'], errors='coerce')
    invalid_mask = values.isna()
    if invalid_mask.any():
        rows = df_lower[invalid_mask].index.tolist()[:MAX_REPORTED_ROWS]
        violations.append(Violation(
            path='value',
            message=f"Found {int(invalid_mask.sum())} missing or non-numeric values. First invalid rows at indices: {rows}",
        ))

    names = df_lower['metric_name'].astype(str).str.strip()
    invalid_mask = df_lower['metric_name'].isna() | (names == '')
    if invalid_mask.any():
        rows = df_lower[invalid_mask].index.tolist()[:MAX_REPORTED_ROWS]
        violations.append(Violation(
            path='metric_name',
            message=f"Found {int(invalid_mask.sum())} empty metric names. First invalid rows at indices: {rows}",
        ))

    return violations


def validate_grain_uniqueness(df: pd.DataFrame) -> List[Violation]:
    """
    Validate that there is at most one row per (metric_name, timestamp).

    Args:
        df: The pandas DataFrame to validate (required columns present)

    Returns:
        List of Violation objects for duplicate rows
    """
    df_lower = _normalized(df)
    keyed = pd.DataFrame({
        'metric_name': df_lower['metric_name'].astype(str).str.strip(),
        'timestamp': pd.to_datetime(df_lower['timestamp'], errors='coerce'),
    })
    duplicated_mask = keyed.duplicated(subset=SERIES_GRAIN, keep=False)
    duplicate_count = int(duplicated_mask.sum())
    if duplicate_count == 0:
        return []

    rows = keyed[duplicated_mask].index.tolist()[:MAX_REPORTED_ROWS]
    return [Violation(
        path='grain',
        message=(
            f"Found {duplicate_count} duplicate rows for grain ({', '.join(SERIES_GRAIN)}). "
            f"First duplicate rows at indices: {rows}"
        ),
    )]


def validate_series_frame(df: pd.DataFrame) -> List[Violation]:
    """
    Run every check on a KPI frame.

    Type and grain checks only run once the required columns are present.
    """
    violations = validate_columns(df)
    if violations:
        return violations
    violations.extend(validate_data_types(df))
    violations.extend(validate_grain_uniqueness(df))
    return violations


# =============================================================================
# CONVERSION
# =============================================================================

def series_from_frame(df: pd.DataFrame) -> Dict[str, KPISeries]:
    """
    Convert a long-format KPI frame into KPISeries by metric name.

    Args:
        df: Frame with timestamp, metric_name and value columns

    Returns:
        Dict of metric name -> KPISeries ordered by timestamp (keys sorted)

    Raises:
        SeriesValidationError: If any validation check fails. The error carries
            every violation found.
    """
    violations = validate_series_frame(df)
    if violations:
        logger.error(f"KPI frame rejected with {len(violations)} violation(s)")
        raise SeriesValidationError("Invalid KPI series frame", violations)

    df_lower = _normalized(df)
    frame = pd.DataFrame({
        'timestamp': pd.to_datetime(df_lower['timestamp']),
        'metric_name': df_lower['metric_name'].astype(str).str.strip(),
        'value': pd.to_numeric(df_lower['value']).astype(float),
    }).sort_values(SERIES_GRAIN, kind='mergesort')

    series: Dict[str, KPISeries] = {}
    for metric_name, group in frame.groupby('metric_name', sort=True):
        points = tuple(
            TimeSeriesPoint(timestamp=row.timestamp.to_pydatetime(), metricName=metric_name, value=float(row.value))
            for row in group.itertuples(index=False)
        )
        series[metric_name] = KPISeries(metricName=metric_name, points=points)

    logger.info(f"Ingested {len(frame)} KPI rows into {len(series)} series")
    return series


def read_series_csv(path: Union[str, Path]) -> Dict[str, KPISeries]:
    """Read a long-format KPI CSV file and convert it with series_from_frame."""
    df = pd.read_csv(path)
    return series_from_frame(df)
