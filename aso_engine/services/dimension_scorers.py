"""
Dimension Scorers.

Seven independent scorers, one per audit dimension. Each is a pure function of
(tokens, combos, registry[, category / market / field texts]) that returns a
RawScore on a 0-100 scale; rounding, gap and severity are applied afterwards by
the gap analyzer so that every dimension goes through the same invariant checks.

Dimensions:
- Intent Coverage: presence and balance of informational / commercial /
  transactional terms, hard-capped when no transactional term is present.
- Keyword Coverage: tier-weighted share of the category's must-have keywords
  found anywhere in the document.
- Combo Quality: relevance of the non-generic 2-3 token combos of the ranking
  fields, by combo length.
- Discovery Coverage: how much of the ranking fields serves non-branded search.
- Relevance: field-weighted mean relevance class of the content tokens.
- Structure: character utilization and word count per field.
- Brand Balance: brand ratio of the ranking fields against the target band.

No scorer raises on empty or odd text: an empty field simply scores at the low
end of its dimension.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from aso_engine.models.enums import SourceField
from aso_engine.models.registry import CategoryConfig, FormulaRegistry, MarketConfig, WordCountBand
from aso_engine.models.schemas import Combo, Token
from aso_engine.services.brand_analyzer import band_score, brand_fields, brand_ratio
from aso_engine.services.intent_classifier import intent_counts, intent_coverage
from aso_engine.services.tokenizer import content_tokens, stem_phrase, tokens_by_field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawScore:
    """Unrounded result of a dimension scorer."""
    score: float
    explanation_tokens: Tuple[str, ...] = ()
    components: Dict[str, float] = field(default_factory=dict)


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    """De-duplicate while keeping first-seen order."""
    seen = set()
    ordered = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return tuple(ordered)


def _mean_class(tokens: Sequence[Token]) -> float:
    if not tokens:
        return 0.0
    return sum(token.relevanceClass for token in tokens) / len(tokens)


# =============================================================================
# Intent Coverage
# =============================================================================


def score_intent_coverage(tokens: Sequence[Token], registry: FormulaRegistry) -> RawScore:
    fields = registry.dimensions.intent_coverage.fields
    counts, matched = intent_counts(tokens, registry, fields)
    score, components = intent_coverage(counts, registry)
    for intent, count in counts.items():
        components[f"{intent.value}_count"] = float(count)
    return RawScore(score=_clamp(score), explanation_tokens=_unique(matched), components=components)


# =============================================================================
# Keyword Coverage
# =============================================================================


def _contains_keyword(grouped: Mapping[SourceField, List[Token]], keyword_stems: List[str]) -> bool:
    """True when the stemmed keyword (single word or phrase) occurs in any field."""
    size = len(keyword_stems)
    if size == 0:
        return False
    for field_tokens in grouped.values():
        for start in range(0, len(field_tokens) - size + 1):
            window = field_tokens[start:start + size]
            if all(token.stem == part or token.text == part for token, part in zip(window, keyword_stems)):
                return True
    return False


def score_keyword_coverage(
    tokens: Sequence[Token],
    category: CategoryConfig,
    registry: FormulaRegistry,
) -> RawScore:
    """
    Tier-weighted share of must-have keywords present in the document.

    Adding a must-have keyword to the document can only add matches, so the
    score never decreases when a listed keyword is added.
    """
    tier_weights = registry.dimensions.keyword_coverage.weights
    grouped = tokens_by_field(tokens)

    found: List[str] = []
    found_weight = 0.0
    total_weight = 0.0
    for item in category.must_have:
        weight = tier_weights.get(item.tier, 0.0)
        total_weight += weight
        if _contains_keyword(grouped, stem_phrase(item.keyword, registry.tokenizer)):
            found.append(item.keyword)
            found_weight += weight

    score = 100.0 * found_weight / total_weight if total_weight > 0 else 0.0
    return RawScore(
        score=_clamp(score),
        explanation_tokens=tuple(found),
        components={
            "found_weight": found_weight,
            "total_weight": total_weight,
            "found_count": float(len(found)),
            "keyword_count": float(len(category.must_have)),
        },
    )


# =============================================================================
# Combo Quality
# =============================================================================


def score_combo_quality(combos: Sequence[Combo], registry: FormulaRegistry) -> RawScore:
    """
    Per combo length: sum of non-generic combo relevance / (3 * combo count).

    Length groups are combined with the registry length weights; a length with
    no combos hands its weight to the others. No combos at all scores 0.
    """
    config = registry.dimensions.combo_quality
    combos = [combo for combo in combos if combo.sourceField in config.fields]

    components: Dict[str, float] = {}
    weighted = 0.0
    used_weight = 0.0
    for length in sorted(config.weights):
        group = [combo for combo in combos if combo.length == length]
        if not group:
            continue
        useful = sum(combo.relevance for combo in group if not combo.isGeneric)
        group_score = useful / (3.0 * len(group))
        components[f"length_{length}"] = 100.0 * group_score
        weighted += config.weights[length] * group_score
        used_weight += config.weights[length]

    score = 100.0 * weighted / used_weight if used_weight > 0 else 0.0
    components["generic_count"] = float(sum(1 for combo in combos if combo.isGeneric))
    components["combo_count"] = float(len(combos))

    strongest = sorted(
        (combo for combo in combos if not combo.isGeneric and combo.relevance >= 2),
        key=lambda combo: -combo.relevance,
    )
    return RawScore(
        score=_clamp(score),
        explanation_tokens=_unique(combo.text for combo in strongest),
        components=components,
    )


# =============================================================================
# Discovery Coverage
# =============================================================================


def score_discovery_coverage(tokens: Sequence[Token], registry: FormulaRegistry) -> RawScore:
    """
    Non-branded search readiness of the ranking fields.

    score = w_share * (1 - brand_ratio) + w_relevance * mean_class(non-brand) / 3

    The first term re-counts the brand ratio that Brand Balance also scores.
    Setting the non_brand_share weight to 0 in the registry removes that overlap
    and makes Discovery depend on non-brand relevance alone.
    """
    config = registry.dimensions.discovery_coverage
    content = content_tokens(tokens, config.fields)
    if not content:
        return RawScore(score=0.0, components={"brand_ratio": 0.0, "non_brand_relevance": 0.0})

    ratio = sum(1 for token in content if token.isBrand) / len(content)
    non_brand = [token for token in content if not token.isBrand]
    relevance = _mean_class(non_brand) / 3.0

    weights = config.weights
    raw = weights["non_brand_share"] * (1.0 - ratio) + weights["non_brand_relevance"] * relevance
    score = 100.0 * raw / registry.weight_total

    return RawScore(
        score=_clamp(score),
        explanation_tokens=_unique(token.text for token in non_brand if token.relevanceClass >= 2),
        components={"brand_ratio": ratio, "non_brand_relevance": 100.0 * relevance},
    )


# =============================================================================
# Relevance
# =============================================================================


def score_relevance(tokens: Sequence[Token], registry: FormulaRegistry) -> RawScore:
    """Field-weighted mean relevance class; empty fields contribute 0."""
    weights = registry.dimensions.relevance.weights
    grouped = tokens_by_field(content_tokens(tokens))

    total = 0.0
    components = {}
    for source_field, weight in weights.items():
        field_score = _mean_class(grouped[source_field]) / 3.0
        components[source_field.value] = 100.0 * field_score
        total += weight * field_score

    score = 100.0 * total / registry.weight_total
    drivers = [token.text for token in content_tokens(tokens) if token.relevanceClass >= 2]
    return RawScore(score=_clamp(score), explanation_tokens=_unique(drivers), components=components)


# =============================================================================
# Structure
# =============================================================================


def utilization_score(utilization: float, registry: FormulaRegistry) -> float:
    """
    Score a character utilization ratio.

    0 .. band min     -> rises linearly from 0 to 100
    band min .. max   -> 100
    band max .. 1.0   -> falls linearly to at_limit_score
    above 1.0         -> 0 (the store truncates or rejects the field)
    """
    config = registry.dimensions.structure
    if utilization <= 0:
        return 0.0
    if utilization > 1.0:
        return 0.0
    if utilization < config.utilization_min:
        return 100.0 * utilization / config.utilization_min
    if utilization <= config.utilization_max:
        return 100.0
    span = 1.0 - config.utilization_max
    over = (utilization - config.utilization_max) / span
    return 100.0 - over * (100.0 - config.at_limit_score)


def word_count_score(count: int, band: WordCountBand) -> float:
    if band.min_words <= count <= band.max_words:
        return 100.0
    if count < band.min_words:
        return 100.0 * count / band.min_words
    return max(0.0, 100.0 * (1.0 - (count - band.max_words) / band.max_words))


def score_structure(
    tokens: Sequence[Token],
    field_texts: Mapping[SourceField, str],
    market: MarketConfig,
    registry: FormulaRegistry,
) -> RawScore:
    config = registry.dimensions.structure
    grouped = tokens_by_field(tokens)
    inner_total = sum(config.weights.values())

    total = 0.0
    components: Dict[str, float] = {}
    for source_field, field_weight in config.field_weights.items():
        text = (field_texts.get(source_field) or "").strip()
        limit = market.character_limits[source_field]
        utilization = len(text) / limit
        word_count = len(grouped[source_field])

        field_score = (
            config.weights["character_utilization"] * utilization_score(utilization, registry)
            + config.weights["word_count"] * word_count_score(word_count, config.word_count_bands[source_field])
        ) / inner_total

        components[f"{source_field.value}_utilization"] = utilization
        components[f"{source_field.value}_words"] = float(word_count)
        components[f"{source_field.value}_score"] = field_score
        total += field_weight * field_score

    score = total / registry.weight_total
    return RawScore(score=_clamp(score), components=components)


# =============================================================================
# Brand Balance
# =============================================================================


def score_brand_balance(tokens: Sequence[Token], registry: FormulaRegistry) -> RawScore:
    """
    Band score of the document brand ratio.

    The ratio pools the content tokens of every field with a positive weight in
    brand_balance.weights; a document with no content in those fields scores 0.
    """
    config = registry.dimensions.brand_balance
    pooled_fields = brand_fields(config)
    components: Dict[str, float] = {}
    for source_field in pooled_fields:
        field_ratio = brand_ratio(tokens, [source_field])
        if field_ratio is not None:
            components[f"{source_field.value}_brand_pct"] = 100.0 * field_ratio

    ratio = brand_ratio(tokens, pooled_fields)
    if ratio is None:
        score = 0.0
        components["brand_pct"] = 0.0
    else:
        score = band_score(100.0 * ratio, config)
        components["brand_pct"] = 100.0 * ratio

    brand_texts = [token.text for token in content_tokens(tokens, pooled_fields) if token.isBrand]
    return RawScore(score=_clamp(score), explanation_tokens=_unique(brand_texts), components=components)
