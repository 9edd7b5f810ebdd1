"""Pydantic schemas for structured data validation.

This package contains:
- llm_outputs.py: Schemas for validating model outputs
- chat.py: Chat history entries
- api.py: Request/response schemas for the REST API

All model outputs are validated against Pydantic models BEFORE being used
by the rest of the system. This provides a clear contract and catches
malformed outputs early.
"""

from sentencify.schemas.llm_outputs import (
    AnalysisOutput,
    BulkExtractionOutput,
    Correction,
    DoubleCheckOutput,
    FactsComparisonOutput,
    Topic,
    TopicExtractionOutput,
)

__all__ = [
    "AnalysisOutput",
    "BulkExtractionOutput",
    "Correction",
    "DoubleCheckOutput",
    "FactsComparisonOutput",
    "Topic",
    "TopicExtractionOutput",
]
