"""
Audit Engine.

Runs the metadata audit pipeline for one document:

    resolve market / category
      -> tokenize (relevance classes)
      -> classify intent
      -> mark brand tokens
      -> build combos
      -> seven dimension scorers
      -> gap analyzer (rounding, gap, severity, band)

and assembles the AuditReport with full token and combo traceability.

The audit is a pure function of (document, registry): it reads no settings, no
clock and no global state, so auditing the same document twice against the same
registry version yields byte-identical reports.
"""

import logging
from typing import Iterable, List

from aso_engine import __version__
from aso_engine.models.enums import Dimension, SourceField
from aso_engine.models.registry import FormulaRegistry
from aso_engine.models.schemas import AuditReport, MetadataDocument
from aso_engine.services.brand_analyzer import brand_fields, brand_ratio, mark_brand_tokens
from aso_engine.services.dimension_scorers import (
    score_brand_balance,
    score_combo_quality,
    score_discovery_coverage,
    score_intent_coverage,
    score_keyword_coverage,
    score_relevance,
    score_structure,
)
from aso_engine.services.formula_registry import resolve_category, resolve_market
from aso_engine.services.gap_analysis import build_dimension_score, overall_score
from aso_engine.services.intent_classifier import classify_tokens
from aso_engine.services.tokenizer import build_combos, tokenize_document

logger = logging.getLogger(__name__)

ENGINE_VERSION = __version__


def audit_metadata(document: MetadataDocument, registry: FormulaRegistry) -> AuditReport:
    """
    Audit one listing.

    Args:
        document: Title, subtitle, description, category, market and brand names.
        registry: Validated formula registry.

    Returns:
        AuditReport with the seven dimension scores in registry dimension_order.

    Note:
        Never raises for well-formed documents; empty or filler-only text scores
        low instead. Unknown markets and categories fall back to the registry
        defaults with a logged warning.
    """
    market_key, market = resolve_market(registry, document.market)
    category_key, category = resolve_category(registry, document.category)

    tokens = tokenize_document(document, market, category, registry)
    tokens = classify_tokens(tokens, registry)
    tokens = mark_brand_tokens(tokens, document.brandNames, registry)
    combos = build_combos(tokens, registry)

    field_texts = {source_field: document.field_text(source_field) for source_field in SourceField}
    raw_scores = {
        Dimension.INTENT_COVERAGE: score_intent_coverage(tokens, registry),
        Dimension.KEYWORD_COVERAGE: score_keyword_coverage(tokens, category, registry),
        Dimension.COMBO_QUALITY: score_combo_quality(combos, registry),
        Dimension.DISCOVERY_COVERAGE: score_discovery_coverage(tokens, registry),
        Dimension.RELEVANCE: score_relevance(tokens, registry),
        Dimension.STRUCTURE: score_structure(tokens, field_texts, market, registry),
        Dimension.BRAND_BALANCE: score_brand_balance(tokens, registry),
    }
    dimensions = tuple(
        build_dimension_score(name, raw_scores[name], registry)
        for name in registry.dimension_order
    )

    ratio = brand_ratio(tokens, brand_fields(registry.dimensions.brand_balance))
    report = AuditReport(
        category=document.category,
        resolvedCategory=category_key,
        market=document.market,
        resolvedMarket=market_key,
        engineVersion=ENGINE_VERSION,
        registryVersion=registry.version,
        overallScore=overall_score(dimensions, registry),
        brandRatio=round(ratio, 4) if ratio is not None else 0.0,
        dimensions=dimensions,
        tokens=tuple(tokens),
        combos=tuple(combos),
    )

    logger.debug(
        f"Audited document ({category_key}/{market_key}): overall {report.overallScore}, "
        f"{len(tokens)} tokens, {len(combos)} combos"
    )
    return report


def audit_batch(documents: Iterable[MetadataDocument], registry: FormulaRegistry) -> List[AuditReport]:
    """Audit several documents against one registry instance, preserving order."""
    reports = [audit_metadata(document, registry) for document in documents]
    logger.info(f"Audited {len(reports)} document(s) with registry {registry.version}")
    return reports
