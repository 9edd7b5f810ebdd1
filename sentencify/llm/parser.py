"""JSON extraction and schema validation for model responses.

Models wrap JSON in markdown fences, prefix it with reasoning or preamble
text, or append commentary after it. ``extract_json`` finds the JSON text;
``parse_ai_response`` decodes it and validates it against a pydantic model.
Neither raises: extraction returns None, parsing returns a ValidationResult.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Generic, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from sentencify.utils.logging import log, get_logger

MODULE = "llm.parser"
logger = get_logger()

T = TypeVar("T", bound=BaseModel)

_FENCED = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_GREEDY = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")
_THINK = re.compile(r"<think>.*?</think>", re.DOTALL)


class JSONExtractionError(Exception):
    """Raised by ``require_json`` when no JSON can be extracted."""

    def __init__(self, message: str, raw_output: str):
        super().__init__(message)
        self.raw_output = raw_output


@dataclass(frozen=True)
class ValidationSuccess(Generic[T]):
    data: T
    success: bool = field(default=True, init=False)


@dataclass(frozen=True)
class ValidationFailure:
    error: str
    success: bool = field(default=False, init=False)


ValidationResult = Union[ValidationSuccess, ValidationFailure]


def strip_think_tags(raw: str) -> tuple[str, Optional[str]]:
    """Strip <think>...</think> blocks from reasoning model output.

    Returns:
        Tuple of (text_without_thinking, thinking_content). When no tags are
        present, returns the original text and None.
    """
    match = _THINK.search(raw)
    if not match:
        return raw, None
    thinking = match.group(0)[len("<think>"):-len("</think>")]
    return _THINK.sub("", raw).strip(), thinking


def _first_decodable(text: str) -> Optional[str]:
    """First complete JSON object or array anywhere in ``text``."""
    decoder = json.JSONDecoder()
    for i, char in enumerate(text):
        if char not in "{[":
            continue
        try:
            _, end = decoder.raw_decode(text, i)
        except json.JSONDecodeError:
            continue
        return text[i:end]
    return None


def extract_json(text: str) -> Optional[str]:
    """Find the JSON text inside a model response.

    Tries, in order:
      1. a fenced code block (```json ... ``` or ``` ... ```)
      2. the first decodable object/array anywhere in the text
      3. the widest ``{...}`` or ``[...]`` span (may still be malformed)

    Returns:
        The JSON substring, or None when nothing looks like JSON.
    """
    if not text:
        return None

    body, thinking = strip_think_tags(text)
    if thinking is not None:
        log.debug(logger, MODULE, "stripped_think", "Stripped <think> tags from response")

    fenced = _FENCED.search(body)
    if fenced:
        return fenced.group(1).strip()

    candidate = _first_decodable(body)
    if candidate is not None:
        return candidate

    greedy = _GREEDY.search(body)
    if greedy:
        return greedy.group(1).strip()
    return None


def require_json(text: str) -> Any:
    """Extract and decode JSON, raising JSONExtractionError on failure."""
    candidate = extract_json(text)
    if candidate is None:
        raise JSONExtractionError("No JSON found in response", raw_output=text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise JSONExtractionError(f"Invalid JSON: {e.msg}", raw_output=text) from e


def format_validation_error(error: ValidationError) -> str:
    """Render every failing field as ``path: message`` joined by ``; ``."""
    issues = []
    for item in error.errors():
        path = ".".join(str(part) for part in item["loc"])
        issues.append(f"{path}: {item['msg']}" if path else item["msg"])
    return "Validation failed: " + "; ".join(issues)


def parse_ai_response(text: str, schema: Type[T]) -> ValidationResult:
    """Extract, decode and validate a model response. Never raises.

    Args:
        text: Raw model output.
        schema: Pydantic model the JSON must satisfy.

    Returns:
        ValidationSuccess with the validated model, or ValidationFailure with
        a human-readable diagnostic.
    """
    try:
        parsed = require_json(text)
    except JSONExtractionError as e:
        log.warning(logger, MODULE, "extract_failed", "Failed to extract JSON from response",
                    error=str(e), raw_length=len(text or ""), schema=schema.__name__)
        return ValidationFailure(error=str(e))

    try:
        data = schema.model_validate(parsed)
    except ValidationError as e:
        message = format_validation_error(e)
        log.warning(logger, MODULE, "validation_failed", "Response failed schema validation",
                    error=message, schema=schema.__name__)
        return ValidationFailure(error=message)

    return ValidationSuccess(data=data)


def safe_extract_json(raw: str, fallback: Any = None) -> tuple[Any, Optional[str]]:
    """Decode JSON with fallback on failure.

    Returns:
        (parsed_json, None) on success, (fallback, error_message) on failure.
    """
    try:
        return require_json(raw), None
    except JSONExtractionError as e:
        log.warning(logger, MODULE, "extract_failed",
                    "Failed to extract JSON from response",
                    error=str(e), raw_length=len(raw or ""))
        return fallback, str(e)
