"""
Dimension Scorer Test Module

Tests for aso_engine/services/dimension_scorers.py, one class per dimension.
Expected values are derived by hand from the packaged registry defaults.
"""

import pytest

from aso_engine.models import MetadataDocument, SourceField
from aso_engine.services.brand_analyzer import mark_brand_tokens
from aso_engine.services.dimension_scorers import (
    score_brand_balance,
    score_combo_quality,
    score_discovery_coverage,
    score_intent_coverage,
    score_keyword_coverage,
    score_relevance,
    score_structure,
    utilization_score,
    word_count_score,
)
from aso_engine.services.formula_registry import resolve_category, resolve_market
from aso_engine.services.intent_classifier import classify_tokens
from aso_engine.services.tokenizer import build_combos, tokenize_document


def _analyze(document, registry):
    """Run the audit pipeline up to the scorers; returns (tokens, combos, category, market)."""
    _, market = resolve_market(registry, document.market)
    _, category = resolve_category(registry, document.category)
    tokens = tokenize_document(document, market, category, registry)
    tokens = classify_tokens(tokens, registry)
    tokens = mark_brand_tokens(tokens, document.brandNames, registry)
    return tokens, build_combos(tokens, registry), category, market


def _doc(title="", subtitle="", description="", category="education", brand_names=()):
    return MetadataDocument(
        title=title,
        subtitle=subtitle,
        description=description,
        category=category,
        market="us",
        brandNames=brand_names,
    )


# =============================================================================
# Intent Coverage
# =============================================================================


class TestIntentCoverageScorer:

    def test_filler_title_hits_transactional_ceiling(self, registry, filler_document):
        """
        best / top / great are commercial, lessons informational, nothing
        transactional: 17.5 + 30 - 12.5 = 35, at the ceiling.
        """
        tokens, _, _, _ = _analyze(filler_document, registry)
        raw = score_intent_coverage(tokens, registry)

        assert raw.score == pytest.approx(35.0)
        assert raw.components["commercial_count"] == 3.0
        assert raw.components["transactional_count"] == 0.0
        assert raw.explanation_tokens == ("best", "top", "great", "lessons")

    def test_empty_document_scores_zero(self, registry):
        tokens, _, _, _ = _analyze(_doc(), registry)
        assert score_intent_coverage(tokens, registry).score == 0.0


# =============================================================================
# Keyword Coverage
# =============================================================================


class TestKeywordCoverageScorer:
    """Education must-haves: learn (50), education (30), study (30), practice (20), vocabulary (20)."""

    def test_no_must_have_keywords(self, registry, filler_document):
        tokens, _, category, _ = _analyze(filler_document, registry)
        raw = score_keyword_coverage(tokens, category, registry)

        assert raw.score == 0.0
        assert raw.explanation_tokens == ()

    def test_partial_coverage(self, registry, language_app_document):
        """learn + study + practice + vocabulary = 120 of 150."""
        tokens, _, category, _ = _analyze(language_app_document, registry)
        raw = score_keyword_coverage(tokens, category, registry)

        assert raw.score == pytest.approx(80.0)
        assert raw.explanation_tokens == ("learn", "study", "practice", "vocabulary")

    def test_adding_a_keyword_never_lowers_the_score(self, registry, language_app_document):
        tokens, _, category, _ = _analyze(language_app_document, registry)
        before = score_keyword_coverage(tokens, category, registry).score

        improved = language_app_document.model_copy(
            update={"subtitle": language_app_document.subtitle + " education"}
        )
        tokens, _, category, _ = _analyze(improved, registry)
        after = score_keyword_coverage(tokens, category, registry).score

        assert after >= before
        assert after == pytest.approx(100.0)

    def test_keyword_matched_by_stem(self, registry):
        """'studies' stems to 'study'."""
        tokens, _, category, _ = _analyze(_doc(description="Daily studies"), registry)
        raw = score_keyword_coverage(tokens, category, registry)

        assert "study" in raw.explanation_tokens

    def test_phrase_keyword_spans_stopwords(self, registry):
        """Productivity lists 'to do list'; 'to' is a stopword but still part of the phrase."""
        tokens, _, category, _ = _analyze(_doc(title="Simple to do list planner", category="productivity"), registry)
        raw = score_keyword_coverage(tokens, category, registry)

        assert "to do list" in raw.explanation_tokens
        assert "planner" in raw.explanation_tokens


# =============================================================================
# Combo Quality
# =============================================================================


class TestComboQualityScorer:

    def test_no_combos_scores_zero(self, registry):
        _, combos, _, _ = _analyze(_doc(title="Spanish"), registry)
        assert score_combo_quality(combos, registry).score == 0.0

    def test_generic_combos_score_zero(self, registry):
        _, combos, _, _ = _analyze(_doc(title="Best Top"), registry)
        raw = score_combo_quality(combos, registry)

        assert raw.score == 0.0
        assert raw.components["generic_count"] == 1.0

    def test_single_length_group_takes_all_weight(self, registry):
        """'spanish grammar' = (3 + 2) / 2 = 2.5 of 3."""
        _, combos, _, _ = _analyze(_doc(title="Spanish Grammar"), registry)
        raw = score_combo_quality(combos, registry)

        assert raw.score == pytest.approx(100.0 * 2.5 / 3.0)
        assert raw.explanation_tokens == ("spanish grammar",)

    def test_length_weights_combine(self, registry):
        """
        length 2: (2.5 + 2.0) / 6 = 0.75
        length 3: (7 / 3) / 3     = 0.7778
        score = 60 * 0.75 + 40 * 0.7778
        """
        _, combos, _, _ = _analyze(_doc(title="Spanish Grammar Lessons"), registry)
        raw = score_combo_quality(combos, registry)

        assert raw.score == pytest.approx(60 * 0.75 + 40 * (7 / 9))

    def test_description_combos_are_ignored(self, registry):
        _, combos, _, _ = _analyze(_doc(description="Spanish Grammar Lessons"), registry)
        assert score_combo_quality(combos, registry).score == 0.0


# =============================================================================
# Discovery Coverage
# =============================================================================


class TestDiscoveryCoverageScorer:

    def test_brand_only_scores_zero(self, registry, brand_only_document):
        tokens, _, _, _ = _analyze(brand_only_document, registry)
        raw = score_discovery_coverage(tokens, registry)

        assert raw.score == 0.0
        assert raw.components["brand_ratio"] == 1.0

    def test_unbranded_category_terms_score_100(self, registry):
        tokens, _, _, _ = _analyze(_doc(title="Spanish"), registry)
        assert score_discovery_coverage(tokens, registry).score == pytest.approx(100.0)

    def test_default_weights_count_brand_share(self, registry):
        """40 * (1 - 0.5) + 60 * 1.0 = 80: the brand ratio lowers Discovery too."""
        tokens, _, _, _ = _analyze(_doc(title="Lingo Spanish", brand_names=("Lingo",)), registry)
        assert score_discovery_coverage(tokens, registry).score == pytest.approx(80.0)

    @pytest.mark.registry
    def test_zero_share_weight_removes_double_count(self, registry_with):
        """With non_brand_share at 0, Discovery depends on non-brand relevance alone."""
        def modify(data):
            data["dimensions"]["discovery_coverage"]["weights"] = {
                "non_brand_share": 0,
                "non_brand_relevance": 100,
            }

        modified = registry_with(modify)
        branded, _, _, _ = _analyze(_doc(title="Lingo Spanish", brand_names=("Lingo",)), modified)
        unbranded, _, _, _ = _analyze(_doc(title="Spanish"), modified)

        assert score_discovery_coverage(branded, modified).score == pytest.approx(100.0)
        assert score_discovery_coverage(unbranded, modified).score == pytest.approx(100.0)

    def test_empty_ranking_fields(self, registry):
        tokens, _, _, _ = _analyze(_doc(description="Spanish lessons"), registry)
        assert score_discovery_coverage(tokens, registry).score == 0.0


# =============================================================================
# Relevance
# =============================================================================


class TestRelevanceScorer:

    def test_filler_title_is_needs_work(self, registry, filler_document):
        """Classes 0,0,3,0,0,2,0 -> mean 5/7; only the title (weight 50) has text."""
        tokens, _, _, _ = _analyze(filler_document, registry)
        raw = score_relevance(tokens, registry)

        assert raw.score == pytest.approx(50 * (5 / 7) / 3)
        assert raw.score < 50
        assert raw.explanation_tokens == ("language", "lessons")

    def test_category_defining_title(self, registry):
        tokens, _, _, _ = _analyze(_doc(title="Spanish"), registry)
        raw = score_relevance(tokens, registry)

        assert raw.score == pytest.approx(50.0)
        assert raw.components[SourceField.TITLE.value] == pytest.approx(100.0)
        assert raw.components[SourceField.SUBTITLE.value] == 0.0

    def test_stopwords_do_not_dilute(self, registry):
        with_stopwords, _, _, _ = _analyze(_doc(title="Spanish for the French"), registry)
        without, _, _, _ = _analyze(_doc(title="Spanish French"), registry)

        assert score_relevance(with_stopwords, registry).score == score_relevance(without, registry).score


# =============================================================================
# Structure
# =============================================================================


class TestStructureScorer:

    @pytest.mark.parametrize("utilization, expected", [
        (0.0, 0.0),
        (0.4, 50.0),
        (0.8, 100.0),
        (0.9, 100.0),
        (0.95, 100.0),
        (1.0, 70.0),
        (1.2, 0.0),
    ])
    def test_utilization_curve(self, registry, utilization, expected):
        assert utilization_score(utilization, registry) == pytest.approx(expected)

    @pytest.mark.parametrize("count, expected", [(0, 0.0), (1, 50.0), (3, 100.0), (6, 80.0), (10, 0.0)])
    def test_word_count_band(self, registry, count, expected):
        band = registry.dimensions.structure.word_count_bands[SourceField.TITLE]
        assert word_count_score(count, band) == pytest.approx(expected)

    def test_empty_document_scores_zero(self, registry):
        document = _doc()
        tokens, _, _, market = _analyze(document, registry)
        field_texts = {source_field: document.field_text(source_field) for source_field in SourceField}

        assert score_structure(tokens, field_texts, market, registry).score == 0.0

    def test_title_only(self, registry):
        """27/30 chars (100) and 4 words (100) in the title; other fields empty."""
        document = _doc(title="Learn Spanish Grammar Today")
        tokens, _, _, market = _analyze(document, registry)
        field_texts = {source_field: document.field_text(source_field) for source_field in SourceField}
        raw = score_structure(tokens, field_texts, market, registry)

        assert raw.components["title_utilization"] == pytest.approx(27 / 30)
        assert raw.components["title_score"] == pytest.approx(100.0)
        assert raw.score == pytest.approx(50.0)


# =============================================================================
# Brand Balance
# =============================================================================


class TestBrandBalanceScorer:

    def test_brand_in_target_band(self, registry):
        """1 brand token of 5 in the title = 20%."""
        tokens, _, _, _ = _analyze(
            _doc(title="Lingo Spanish French German Grammar", brand_names=("Lingo",)), registry
        )
        raw = score_brand_balance(tokens, registry)

        assert raw.score == pytest.approx(100.0)
        assert raw.explanation_tokens == ("lingo",)

    def test_brand_only_scores_zero(self, registry, brand_only_document):
        tokens, _, _, _ = _analyze(brand_only_document, registry)
        raw = score_brand_balance(tokens, registry)

        assert raw.score == 0.0
        assert raw.components["brand_pct"] == 100.0

    def test_no_brand_presence_scores_zero(self, registry):
        """A ratio of 0% sits on the outer bound."""
        tokens, _, _, _ = _analyze(_doc(title="Spanish Lessons"), registry)
        assert score_brand_balance(tokens, registry).score == 0.0

    def test_fields_are_pooled(self, registry):
        """Title 1 of 5 plus subtitle 1 of 2: one ratio of 2 / 7 (28.6%), in band."""
        tokens, _, _, _ = _analyze(
            _doc(
                title="Lingo Spanish French German Grammar",
                subtitle="Lingo Lessons",
                brand_names=("Lingo",),
            ),
            registry,
        )
        raw = score_brand_balance(tokens, registry)

        assert raw.score == pytest.approx(100.0)
        assert raw.components["brand_pct"] == pytest.approx(200.0 / 7)
        assert raw.components["subtitle_brand_pct"] == pytest.approx(50.0)

    def test_brand_free_subtitle_is_not_penalised(self, registry):
        """1 brand token of 8 across title and subtitle = 12.5%."""
        tokens, _, _, _ = _analyze(
            _doc(
                title="Lingo: Learn Spanish & French",
                subtitle="Speak a new language daily",
                brand_names=("Lingo",),
            ),
            registry,
        )
        raw = score_brand_balance(tokens, registry)

        assert raw.components["brand_pct"] == pytest.approx(12.5)
        assert raw.score == pytest.approx(100.0)

    def test_under_and_over_branding_score_alike(self, registry):
        """5% (target min - 5) and 35% (target max + 5) over 20 ranking tokens."""
        under = _doc(
            title="Lingo Spanish French German Italian Grammar Vocabulary Lessons Practice Speak",
            subtitle="Study Words Phrases Travel Course Daily Quiz Reading Writing Listening",
            brand_names=("Lingo",),
        )
        over = _doc(
            title="Lingo Lingo Lingo Lingo Italian Grammar Vocabulary Lessons Practice Speak",
            subtitle="Lingo Lingo Lingo Words Phrases Travel Course Daily Quiz Reading",
            brand_names=("Lingo",),
        )
        under_raw = score_brand_balance(_analyze(under, registry)[0], registry)
        over_raw = score_brand_balance(_analyze(over, registry)[0], registry)

        assert under_raw.components["brand_pct"] == pytest.approx(5.0)
        assert over_raw.components["brand_pct"] == pytest.approx(35.0)
        assert under_raw.score == pytest.approx(50.0)
        assert over_raw.score == pytest.approx(under_raw.score)
