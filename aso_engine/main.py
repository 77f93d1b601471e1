"""
Command-line entry point for the ASO metadata engine.

Subcommands:
    aso-engine validate-registry [PATH]
        Validate a Formula Registry document (default: the configured registry)
        and print its violations.

    aso-engine audit DOCUMENT.json [--registry PATH] [--gaps]
        Audit one metadata document (or a JSON list of documents) and print the
        AuditReport JSON.

    aso-engine intelligence DOCUMENT.json --series KPIS.csv [--observations OBS.json] [--registry PATH]
        Audit the document, then build the intelligence report from the KPI
        series CSV and the optional anomaly observations.

Output is JSON on stdout; logs go to stderr. Exit codes:
    0 success, 1 invalid input data, 2 configuration error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from pydantic import ValidationError

from aso_engine import __version__
from aso_engine.core.config import get_settings
from aso_engine.core.errors import ConfigurationError, SeriesValidationError
from aso_engine.models.registry import FormulaRegistry
from aso_engine.models.schemas import AnomalyObservation, MetadataDocument
from aso_engine.services.audit_engine import audit_batch, audit_metadata
from aso_engine.services.formula_registry import (
    DEFAULT_REGISTRY_PATH,
    load,
    load_configured_registry,
    validate,
)
from aso_engine.services.gap_analysis import rank_gaps
from aso_engine.services.intelligence import build_intelligence_report
from aso_engine.services.series_ingestion import read_series_csv

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 1
EXIT_CONFIGURATION_ERROR = 2


def configure_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
        stream=sys.stderr,
    )


def _read_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _registry(path: Optional[str]) -> FormulaRegistry:
    if path:
        return load(Path(path))
    return load_configured_registry()


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=False, default=str))
    sys.stdout.write("\n")


# =============================================================================
# Subcommands
# =============================================================================


def cmd_validate_registry(args: argparse.Namespace) -> int:
    path = args.path or get_settings().registry_path or str(DEFAULT_REGISTRY_PATH)
    violations = validate(Path(path))
    _emit({
        "registry": str(path),
        "valid": not violations,
        "violations": [violation.model_dump() for violation in violations],
    })
    if violations:
        logger.error(f"Registry {path} has {len(violations)} violation(s)")
        return EXIT_CONFIGURATION_ERROR
    return EXIT_OK


def cmd_audit(args: argparse.Namespace) -> int:
    registry = _registry(args.registry)
    data = _read_json(args.document)

    if isinstance(data, list):
        documents = [MetadataDocument.model_validate(item) for item in data]
        reports = audit_batch(documents, registry)
        payload: Any = [_audit_payload(report, registry, args.gaps) for report in reports]
    else:
        report = audit_metadata(MetadataDocument.model_validate(data), registry)
        payload = _audit_payload(report, registry, args.gaps)

    _emit(payload)
    return EXIT_OK


def _audit_payload(report, registry: FormulaRegistry, with_gaps: bool) -> Any:
    payload = report.model_dump(mode="json")
    if with_gaps:
        payload["gaps"] = [item.model_dump(mode="json") for item in rank_gaps(report, registry)]
    return payload


def cmd_intelligence(args: argparse.Namespace) -> int:
    registry = _registry(args.registry)
    document = MetadataDocument.model_validate(_read_json(args.document))
    series = read_series_csv(args.series)

    observations: List[AnomalyObservation] = []
    if args.observations:
        raw = _read_json(args.observations)
        items = raw if isinstance(raw, list) else [raw]
        observations = [AnomalyObservation.model_validate(item) for item in items]

    report = audit_metadata(document, registry)
    intelligence = build_intelligence_report(report, series, registry, observations)
    _emit({
        "audit": report.model_dump(mode="json"),
        "gaps": [item.model_dump(mode="json") for item in rank_gaps(report, registry)],
        "intelligence": intelligence.model_dump(mode="json"),
    })
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aso-engine",
        description="Deterministic ASO metadata scoring and intelligence engine",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate-registry", help="Validate a Formula Registry document")
    validate_parser.add_argument("path", nargs="?", help="Registry YAML/JSON (default: configured registry)")
    validate_parser.set_defaults(handler=cmd_validate_registry)

    audit_parser = subparsers.add_parser("audit", help="Audit metadata document(s)")
    audit_parser.add_argument("document", help="JSON metadata document or list of documents")
    audit_parser.add_argument("--registry", help="Registry YAML/JSON overriding the configured one")
    audit_parser.add_argument("--gaps", action="store_true", help="Include the ranked gap list")
    audit_parser.set_defaults(handler=cmd_audit)

    intel_parser = subparsers.add_parser("intelligence", help="Audit plus intelligence report")
    intel_parser.add_argument("document", help="JSON metadata document")
    intel_parser.add_argument("--series", required=True, help="Long-format KPI CSV (timestamp, metric_name, value)")
    intel_parser.add_argument("--observations", help="JSON anomaly observation or list of observations")
    intel_parser.add_argument("--registry", help="Registry YAML/JSON overriding the configured one")
    intel_parser.set_defaults(handler=cmd_intelligence)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, run the subcommand and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        return args.handler(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIGURATION_ERROR
    except SeriesValidationError as e:
        logger.error(f"{e}: " + "; ".join(f"{v.path}: {v.message}" for v in e.violations))
        return EXIT_INVALID_INPUT
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Invalid input: {e}")
        return EXIT_INVALID_INPUT


if __name__ == "__main__":
    sys.exit(main())
