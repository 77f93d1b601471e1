'''
ASO Metadata Engine Test Suite

Test Modules:
-------------
- test_formula_registry.py: registry loading, validation, hot swap
- test_tokenizer.py: splitting, stemming, relevance classes, combos
- test_intent_classifier.py: token intent and Intent Coverage math
- test_brand_analyzer.py: brand matching and the symmetric band curve
- test_dimension_scorers.py: the seven scorers on synthetic token lists
- test_gap_analysis.py: severity bands, score bands, gap ranking
- test_audit_engine.py: end-to-end audits and the reference scenarios
- test_stability.py: coefficient of variation and composite stability
- test_opportunity_map.py: opportunity ranking and priority labels
- test_outcome_simulator.py: elasticity projections, caps, bands
- test_anomaly_attribution.py: first-match rule scan
- test_intelligence.py: intelligence report assembly
- test_series_ingestion.py: KPI frame validation and conversion
- test_main.py: command-line entry point

Running Tests:
--------------
    pip install -e ".[test]"
    pytest aso_engine/tests -v

Configuration:
--------------
See conftest.py for shared fixtures and test configuration.
'''

__all__ = []
