"""Token accounting across provider calls.

The accumulator is owned by the invoker (one per application), so tests can
build a fresh one without touching module state.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from sentencify.utils.logging import log, get_logger

MODULE = "llm.metrics"
logger = get_logger()


def _count(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return 0


class TokenUsage(BaseModel):
    """Token usage reported for a single response."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @classmethod
    def from_anthropic(cls, usage: Optional[Mapping[str, Any]]) -> "TokenUsage":
        """Normalise an Anthropic ``usage`` block. Missing counts are zero."""
        usage = usage or {}
        return cls(
            input_tokens=_count(usage.get("input_tokens")),
            output_tokens=_count(usage.get("output_tokens")),
            cache_read_tokens=_count(usage.get("cache_read_input_tokens")),
            cache_creation_tokens=_count(usage.get("cache_creation_input_tokens")),
        )

    @classmethod
    def from_langchain(cls, usage: Optional[Mapping[str, Any]]) -> "TokenUsage":
        """Normalise langchain ``usage_metadata`` (OpenAI-compatible providers)."""
        usage = usage or {}
        details = usage.get("input_token_details") or {}
        return cls(
            input_tokens=_count(usage.get("input_tokens")),
            output_tokens=_count(usage.get("output_tokens")),
            cache_read_tokens=_count(details.get("cache_read")),
            cache_creation_tokens=_count(details.get("cache_creation")),
        )


class TokenMetrics(BaseModel):
    """Running totals. Every count only grows until ``reset``."""

    model_config = ConfigDict(frozen=True)

    total_input: int = 0
    total_output: int = 0
    total_cache_read: int = 0
    total_cache_creation: int = 0
    request_count: int = 0
    last_updated: Optional[datetime] = None


class TokenMetricsAccumulator:
    """Adds per-response usage into running totals."""

    def __init__(self):
        self._metrics = TokenMetrics()

    @property
    def snapshot(self) -> TokenMetrics:
        return self._metrics

    def record(self, usage: TokenUsage) -> TokenMetrics:
        current = self._metrics
        self._metrics = TokenMetrics(
            total_input=current.total_input + usage.input_tokens,
            total_output=current.total_output + usage.output_tokens,
            total_cache_read=current.total_cache_read + usage.cache_read_tokens,
            total_cache_creation=current.total_cache_creation + usage.cache_creation_tokens,
            request_count=current.request_count + 1,
            last_updated=datetime.now(timezone.utc),
        )
        log.debug(logger, MODULE, "usage_recorded", "Token usage recorded",
                  input_tokens=usage.input_tokens, output_tokens=usage.output_tokens,
                  cache_read=usage.cache_read_tokens,
                  cache_creation=usage.cache_creation_tokens,
                  request_count=self._metrics.request_count)
        return self._metrics

    def reset(self) -> None:
        self._metrics = TokenMetrics()
        log.info(logger, MODULE, "metrics_reset", "Token metrics reset")
