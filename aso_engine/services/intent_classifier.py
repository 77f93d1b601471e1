"""
Intent Classifier.

Assigns every content token one search-intent bucket and scores how well the
document covers the three buckets:

- informational: learning / discovery terms ("learn", "guide", "how to")
- commercial: comparison / evaluation terms ("best", "compare", "review")
- transactional: action terms ("download", "start", "sign up")

A term listed under several buckets resolves to the first bucket in the
registry's intent priority order, so classification is total and a token never
carries two intents. Multi-word keywords ("how to", "sign up") are matched as
phrases over the raw token sequence of each field, stopwords included.

Intent Coverage:
    presence_b = min(1, count_b / min_presence_b)
    dominance  = (max_share - 1/3) / (2/3)        0 when balanced, 1 when one bucket only
    score      = sum(weight_b * presence_b) - balance_penalty * dominance

A document with no transactional term is hard-capped at the registry's
transactional ceiling. The cap is a ceiling, not an averaged penalty, so it is
the main source of critical intent gaps.
"""

import logging
from typing import Dict, List, NamedTuple, Sequence, Tuple

from aso_engine.models.enums import IntentClass, SourceField
from aso_engine.models.registry import FormulaRegistry
from aso_engine.models.schemas import Token
from aso_engine.services.tokenizer import lookup_intent, stem_phrase, tokens_by_field

logger = logging.getLogger(__name__)


class IntentPhraseHit(NamedTuple):
    """A multi-word intent keyword found in a field."""
    intent: IntentClass
    phrase: str
    source_field: SourceField
    position: int


def classify_token(token: Token, registry: FormulaRegistry) -> IntentClass:
    """Intent of a single token; stopwords have no intent."""
    if token.isStopword:
        return IntentClass.NONE
    return lookup_intent([token.stem, token.text], registry)


def classify_tokens(tokens: Sequence[Token], registry: FormulaRegistry) -> List[Token]:
    """Return the tokens with intentClass filled in."""
    return [
        token.model_copy(update={"intentClass": classify_token(token, registry)})
        for token in tokens
    ]


def _phrase_keywords(registry: FormulaRegistry) -> List[Tuple[IntentClass, str, List[str]]]:
    """Multi-word keywords with their stems, resolved by priority, in a stable order."""
    resolved: Dict[str, IntentClass] = {}
    for intent in registry.intent.priority:
        for keyword in sorted(registry.intent.keywords.get(intent, frozenset())):
            if " " in keyword and keyword not in resolved:
                resolved[keyword] = intent
    return [
        (intent, phrase, stem_phrase(phrase, registry.tokenizer))
        for phrase, intent in sorted(resolved.items())
    ]


def find_intent_phrases(
    tokens: Sequence[Token],
    registry: FormulaRegistry,
    fields: Sequence[SourceField],
) -> List[IntentPhraseHit]:
    """Find every occurrence of a multi-word intent keyword in the given fields."""
    phrases = _phrase_keywords(registry)
    if not phrases:
        return []

    hits = []
    grouped = tokens_by_field(tokens)
    for source_field in fields:
        field_tokens = grouped[source_field]
        for intent, phrase, phrase_stems in phrases:
            size = len(phrase_stems)
            for start in range(0, len(field_tokens) - size + 1):
                window = field_tokens[start:start + size]
                if all(
                    token.stem == part or token.text == part
                    for token, part in zip(window, phrase_stems)
                ):
                    hits.append(IntentPhraseHit(intent, phrase, source_field, window[0].position))
    return hits


def intent_counts(
    tokens: Sequence[Token],
    registry: FormulaRegistry,
    fields: Sequence[SourceField],
) -> Tuple[Dict[IntentClass, int], List[str]]:
    """
    Count intent terms per bucket.

    Returns:
        Tuple of (counts per scored bucket, matched terms in document order).
    """
    counts = {intent: 0 for intent in registry.intent.priority}
    matched: List[str] = []
    for token in tokens:
        if token.sourceField in fields and token.intentClass != IntentClass.NONE:
            counts[token.intentClass] += 1
            matched.append(token.text)
    for hit in find_intent_phrases(tokens, registry, fields):
        counts[hit.intent] += 1
        matched.append(hit.phrase)
    return counts, matched


def intent_coverage(counts: Dict[IntentClass, int], registry: FormulaRegistry) -> Tuple[float, Dict[str, float]]:
    """
    Compute the raw Intent Coverage score from bucket counts.

    Args:
        counts: Term count per intent bucket.
        registry: Formula registry in use.

    Returns:
        Tuple of (score before rounding, named components).
    """
    config = registry.dimensions.intent_coverage
    total = sum(counts.values())
    components: Dict[str, float] = {}

    if total == 0:
        return 0.0, {"presence": 0.0, "balance_penalty": 0.0, "ceiling_applied": 0.0}

    presence_score = 0.0
    for intent, weight in config.weights.items():
        presence = min(1.0, counts.get(intent, 0) / config.min_presence[intent])
        components[f"{intent.value}_presence"] = presence
        presence_score += 100.0 * weight * presence / registry.weight_total

    max_share = max(counts.values()) / total
    dominance = max(0.0, (max_share - 1.0 / 3.0) / (2.0 / 3.0))
    penalty = config.balance_penalty * dominance
    score = presence_score - penalty

    ceiling_applied = counts.get(IntentClass.TRANSACTIONAL, 0) == 0 and score > config.transactional_ceiling
    if counts.get(IntentClass.TRANSACTIONAL, 0) == 0:
        score = min(score, config.transactional_ceiling)

    components.update({
        "presence": presence_score,
        "balance_penalty": penalty,
        "ceiling_applied": 1.0 if ceiling_applied else 0.0,
    })
    return max(0.0, min(100.0, score)), components
