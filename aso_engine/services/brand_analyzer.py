"""
Brand Ratio Analyzer.

Flags tokens that belong to the app's own brand and measures how much of the
ranking fields the brand occupies.

Matching is case-insensitive and substring-aware so compound brand forms work:
a token is a brand token when the normalized brand form is contained in it
("lingoapp" contains "lingo"), or when the token is a long-enough fragment of
the brand form ("lingo" inside "lingoapp").

The Brand Balance score is a band function of the brand ratio (in percent):

    score
    100 |        _________
        |       /         \\
        |      /           \\
      0 |_____/             \\_____
           outer  target    target  outer
            min    min       max     max

Over-branded and under-branded documents degrade through the same curve; the
registry validator rejects outer bounds that are not equally far from the
target band on both sides.
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence

from aso_engine.models.enums import SourceField
from aso_engine.models.registry import BrandBalanceConfig, FormulaRegistry
from aso_engine.models.schemas import Token
from aso_engine.services.tokenizer import content_tokens

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[\W_]+")


def normalize_brand_form(name: str) -> str:
    """Lowercase a brand name and strip everything but letters and digits."""
    return _NON_WORD.sub("", (name or "").lower())


def is_brand_token(text: str, brand_forms: Iterable[str], min_fragment_length: int) -> bool:
    """True when the token matches any brand form."""
    for form in brand_forms:
        if not form:
            continue
        if form in text:
            return True
        if len(text) >= min_fragment_length and text in form:
            return True
    return False


def mark_brand_tokens(
    tokens: Sequence[Token],
    brand_names: Iterable[str],
    registry: FormulaRegistry,
) -> List[Token]:
    """Return the tokens with isBrand set. Stopwords are never brand tokens."""
    forms = sorted({normalize_brand_form(name) for name in brand_names} - {""})
    if not forms:
        return list(tokens)

    min_fragment = registry.dimensions.brand_balance.min_fragment_length
    marked = []
    for token in tokens:
        is_brand = not token.isStopword and is_brand_token(token.text, forms, min_fragment)
        marked.append(token.model_copy(update={"isBrand": is_brand}) if is_brand else token)
    return marked


def brand_fields(config: BrandBalanceConfig) -> List[SourceField]:
    """Fields pooled into the document brand ratio (positive weight only)."""
    return [source_field for source_field, weight in config.weights.items() if weight > 0]


def brand_ratio(tokens: Sequence[Token], fields: Optional[Sequence[SourceField]] = None) -> Optional[float]:
    """
    Share of content tokens that are brand tokens.

    Args:
        tokens: Document tokens with isBrand set.
        fields: Fields to pool; all fields when None.

    Returns:
        Ratio in [0, 1], or None when the fields hold no content token.
    """
    content = content_tokens(tokens, fields)
    if not content:
        return None
    return sum(1 for token in content if token.isBrand) / len(content)


def band_score(ratio_pct: float, config: BrandBalanceConfig) -> float:
    """Score a brand ratio (percent) against the target band and outer bounds."""
    if config.target_min_pct <= ratio_pct <= config.target_max_pct:
        return 100.0
    if ratio_pct < config.target_min_pct:
        width = config.target_min_pct - config.outer_min_pct
        distance = config.target_min_pct - ratio_pct
    else:
        width = config.outer_max_pct - config.target_max_pct
        distance = ratio_pct - config.target_max_pct
    if width <= 0:
        return 0.0
    return max(0.0, 100.0 * (1.0 - distance / width))
