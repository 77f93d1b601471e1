"""
Tokenizer and Relevance Scorer.

Splits each metadata field into Token records and assigns every token a
relevance class from the Formula Registry:

    0 = generic filler ("best", "top", "new") or stopword
    1 = neutral (any token no table mentions)
    2 = supporting category term ("lesson", "grammar")
    3 = category-defining term ("language", "spanish")

Lookup order on the token (stem first, then surface text):
    category term table -> generic filler terms -> numeric tokens -> default class

Stopwords of the resolved market are kept as tokens so that every word of the
document appears in the audit traceability data, but they are flagged
`isStopword`, receive class 0, and are excluded from scoring.

This module also builds Combos (2-3 token phrases over adjacent non-stopword
tokens of a field) and owns the intent keyword lookup shared with the intent
classifier.

Everything here is deterministic: same text, category and registry version give
the same token sequence and classes.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence

from aso_engine.models.enums import IntentClass, SourceField
from aso_engine.models.registry import CategoryConfig, FormulaRegistry, MarketConfig, TokenizerConfig
from aso_engine.models.schemas import Combo, MetadataDocument, Token

logger = logging.getLogger(__name__)


# =============================================================================
# Splitting and Stemming
# =============================================================================


def split_text(text: str, config: TokenizerConfig) -> List[str]:
    """Lowercase a field and split it on the registry split pattern."""
    if not text:
        return []
    return [part for part in re.split(config.split_pattern, text.lower()) if part]


def stem(word: str, config: TokenizerConfig) -> str:
    """
    Reduce a word with the registry's suffix rules.

    The first rule whose suffix matches decides. If the rewritten stem would be
    shorter than min_stem_length the word is returned unchanged.

    Examples (default registry):
        >>> stem("lessons", config)
        'lesson'
        >>> stem("studies", config)
        'study'
        >>> stem("fitness", config)
        'fitness'
    """
    for rule in config.stem_rules:
        if word.endswith(rule.suffix):
            candidate = word[: len(word) - len(rule.suffix)] + rule.replacement
            if len(candidate) >= config.min_stem_length:
                return candidate
            return word
    return word


def stem_phrase(phrase: str, config: TokenizerConfig) -> List[str]:
    """Split and stem a registry keyword or phrase."""
    return [stem(word, config) for word in split_text(phrase, config)]


# =============================================================================
# Relevance
# =============================================================================


def classify_relevance(
    text: str,
    stemmed: str,
    category: CategoryConfig,
    registry: FormulaRegistry,
) -> int:
    """
    Relevance class (0-3) of a non-stopword token.

    Args:
        text: Lowercased surface form.
        stemmed: Stem of the surface form.
        category: Resolved category vocabulary.
        registry: Formula registry in use.

    Returns:
        Relevance class. Never fails: unknown tokens get the default class.
    """
    for candidate in (stemmed, text):
        if candidate in category.terms:
            return category.terms[candidate]

    generic = registry.relevance.generic_terms
    if stemmed in generic or text in generic:
        return 0

    if text.isdigit():
        return registry.relevance.numeric_class

    return registry.relevance.default_class


# =============================================================================
# Intent Lookup
# =============================================================================


def lookup_intent(candidates: Iterable[str], registry: FormulaRegistry) -> IntentClass:
    """
    First intent class, in registry priority order, whose keyword set contains
    any of the candidate forms. Returns IntentClass.NONE when nothing matches.
    """
    candidates = [c for c in candidates if c]
    for intent in registry.intent.priority:
        keywords = registry.intent.keywords.get(intent, frozenset())
        for candidate in candidates:
            if candidate in keywords:
                return intent
    return IntentClass.NONE


# =============================================================================
# Tokenization
# =============================================================================


def tokenize_field(
    text: str,
    source_field: SourceField,
    market: MarketConfig,
    category: CategoryConfig,
    registry: FormulaRegistry,
) -> List[Token]:
    """Tokenize one field. Positions are 0-based within the field."""
    tokens = []
    for position, word in enumerate(split_text(text, registry.tokenizer)):
        stemmed = stem(word, registry.tokenizer)
        is_stopword = word in market.stopwords
        relevance_class = 0 if is_stopword else classify_relevance(word, stemmed, category, registry)
        tokens.append(
            Token(
                text=word,
                stem=stemmed,
                sourceField=source_field,
                position=position,
                relevanceClass=relevance_class,
                isStopword=is_stopword,
            )
        )
    return tokens


def tokenize_document(
    document: MetadataDocument,
    market: MarketConfig,
    category: CategoryConfig,
    registry: FormulaRegistry,
) -> List[Token]:
    """
    Tokenize title, subtitle and description in that order.

    Market and category must already be resolved
    (see formula_registry.resolve_market / resolve_category).
    """
    tokens: List[Token] = []
    for source_field in SourceField:
        tokens.extend(
            tokenize_field(document.field_text(source_field), source_field, market, category, registry)
        )
    logger.debug(f"Tokenized document into {len(tokens)} tokens")
    return tokens


def content_tokens(tokens: Iterable[Token], fields: Optional[Sequence[SourceField]] = None) -> List[Token]:
    """Non-stopword tokens, optionally restricted to some fields."""
    return [
        token for token in tokens
        if not token.isStopword and (fields is None or token.sourceField in fields)
    ]


def tokens_by_field(tokens: Iterable[Token]) -> Dict[SourceField, List[Token]]:
    grouped: Dict[SourceField, List[Token]] = {source_field: [] for source_field in SourceField}
    for token in tokens:
        grouped[token.sourceField].append(token)
    return grouped


# =============================================================================
# Combos
# =============================================================================


def _is_filler(token: Token, registry: FormulaRegistry) -> bool:
    filler = registry.relevance.generic_terms | registry.dimensions.combo_quality.modifier_terms
    return token.text in filler or token.stem in filler


def build_combos(tokens: Sequence[Token], registry: FormulaRegistry) -> List[Combo]:
    """
    Build every 2-3 token combo of the registry's combo fields.

    Windows slide over the non-stopword tokens of each field, so "learn to
    speak" yields "learn speak". A combo is generic when every member is a
    filler or modifier word, and branded when any member is a brand token.
    Intent: a combo whose text is a registry intent phrase takes that intent,
    otherwise the highest-priority intent among its members.
    """
    config = registry.dimensions.combo_quality
    grouped = tokens_by_field(tokens)
    combos: List[Combo] = []

    for source_field in config.fields:
        words = content_tokens(grouped[source_field])
        for length in range(config.min_length, config.max_length + 1):
            for start in range(0, len(words) - length + 1):
                window = words[start:start + length]
                texts = tuple(token.text for token in window)
                phrase = " ".join(texts)
                intent = lookup_intent([phrase, " ".join(token.stem for token in window)], registry)
                if intent == IntentClass.NONE:
                    member_intents = {token.intentClass for token in window}
                    for candidate in registry.intent.priority:
                        if candidate in member_intents:
                            intent = candidate
                            break
                combos.append(
                    Combo(
                        text=phrase,
                        tokens=texts,
                        sourceField=source_field,
                        position=window[0].position,
                        length=length,
                        relevance=sum(token.relevanceClass for token in window) / length,
                        intentClass=intent,
                        isGeneric=all(_is_filler(token, registry) for token in window),
                        isBranded=any(token.isBrand for token in window),
                    )
                )

    logger.debug(f"Built {len(combos)} combos")
    return combos
