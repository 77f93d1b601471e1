"""
ASO Metadata Scoring & Intelligence Engine.

Deterministic, registry-driven audit of app-store listing metadata (title,
subtitle, description) with an intelligence layer over historical KPI series.

Subpackages:
    - core: Settings and the error taxonomy
    - models: Pydantic schemas, registry schema and enums
    - registry: The packaged default Formula Registry document
    - services: Tokenizer, scorers, gap analysis and intelligence services

The command-line entry point lives in aso_engine.main.
"""

__version__ = "2.0.0"
