"""Semantic validators for LLM outputs.

These validators check domain constraints BEYOND schema validation.
Schema validation ensures the JSON has the right shape.
Semantic validation ensures the content makes sense.

Each validator takes the validated model and returns ``(is_valid, error)``.
Suspicious but usable output is logged and accepted.
"""

from typing import Any, Callable, Tuple

from sentencify.schemas.llm_outputs import (
    AnalysisOutput,
    BulkExtractionOutput,
    DoubleCheckOutput,
    TopicExtractionOutput,
)
from sentencify.utils.logging import log, get_logger

MODULE = "llm.validators"
logger = get_logger()

ValidatorFunc = Callable[[Any], Tuple[bool, str]]


def validate_topic_extraction(output: TopicExtractionOutput) -> tuple[bool, str]:
    """At least one topic, and every topic has a title."""
    if not output.topics:
        return False, "Topic extraction produced no topics"

    for i, topic in enumerate(output.topics):
        if not topic.title.strip():
            return False, f"Topic {i} has an empty title"

    titles = [t.title.strip().upper() for t in output.topics]
    if len(set(titles)) != len(titles):
        log.warning(logger, MODULE, "duplicate_topics",
                    "Topic extraction returned duplicate titles",
                    topics=len(titles), unique=len(set(titles)))

    return True, ""


def validate_analysis(output: AnalysisOutput) -> tuple[bool, str]:
    """An analysis must list the claims, and claim numbers must not repeat."""
    if not output.pedidos:
        return False, "Analysis lists no claims (pedidos)"

    numbers = [p.numero for p in output.pedidos if p.numero is not None]
    if len(set(numbers)) != len(numbers):
        log.warning(logger, MODULE, "duplicate_claim_numbers",
                    "Analysis repeats claim numbers", claims=len(numbers))

    return True, ""


def validate_double_check(output: DoubleCheckOutput) -> tuple[bool, str]:
    """Corrections must say what they change."""
    for i, correction in enumerate(output.corrections):
        if not correction.description.strip() and not correction.corrected:
            return False, f"Correction {i} ({correction.type}) has no description"

    # Suspicious but not fatal
    if output.corrections and output.confidence > 0.95:
        log.warning(logger, MODULE, "confident_with_corrections",
                    "Audit reports corrections with near-total confidence",
                    corrections=len(output.corrections), confidence=output.confidence)

    return True, ""


def validate_bulk_extraction(output: BulkExtractionOutput) -> tuple[bool, str]:
    """Every extracted template needs a title and content."""
    for i, model in enumerate(output.modelos):
        if not model.titulo.strip():
            return False, f"Template {i} has an empty title"
        if not model.conteudo.strip():
            return False, f"Template {i} ({model.titulo}) has no content"
    return True, ""
