"""Unified LLM invocation: build, send with retry, parse, validate, account.

This module provides the single entry point for every model call. It handles
the full lifecycle:

  1. BUILD: resolve model, thinking budget and cache hints (request_builder)
  2. SEND: call the provider transport under the retry policy (retry)
  3. ACCOUNT: add the response's token usage to the metrics accumulator
  4. PARSE + VALIDATE: extract JSON and check it against a pydantic schema,
     then run the optional semantic validator (invoke_structured only)

  invoker = LLMInvoker(load_settings())
  text = await invoker.call_ai([Message(role="user", content="...")])
  result = await invoker.invoke_structured(messages, TopicExtractionOutput)
  if result.success:
      topics = result.data.topics
"""

import time
from typing import Any, Callable, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel

from sentencify.config import AISettings, load_settings
from sentencify.llm.client import ProviderNotConfiguredError, get_transport
from sentencify.llm.metrics import TokenMetricsAccumulator
from sentencify.llm.parser import ValidationFailure, ValidationResult, extract_json, parse_ai_response
from sentencify.llm.request_builder import CallOptions, Message, build_request
from sentencify.llm.retry import AI_RETRY_POLICY, CallResult, FailureReason, RetryPolicy, execute
from sentencify.llm.transport import Transport
from sentencify.utils.logging import log, get_logger

MODULE = "llm.invoker"
logger = get_logger()

T = TypeVar("T", bound=BaseModel)


class LLMInvoker:
    """Owns the settings, the transports and the token metrics of one process."""

    def __init__(
        self,
        settings: Optional[AISettings] = None,
        transports: Optional[Mapping[str, Transport]] = None,
        metrics: Optional[TokenMetricsAccumulator] = None,
        retry_policy: RetryPolicy = AI_RETRY_POLICY,
    ):
        self.settings = settings if settings is not None else load_settings()
        self.metrics = metrics if metrics is not None else TokenMetricsAccumulator()
        self.retry_policy = retry_policy
        self._fixed_transports = dict(transports or {})
        self._transports: dict[str, Transport] = {}

    def is_available(self, provider: Optional[str] = None) -> bool:
        """True when ``provider`` (default: current) can be called."""
        name = provider or self.settings.provider
        if name in self._fixed_transports:
            return True
        config = self.settings.provider_config(name)
        return config is not None and config.is_configured()

    def update_settings(self, **changes: Any) -> AISettings:
        """Replace the settings with an updated copy and drop cached transports."""
        self.settings = self.settings.with_updates(**changes)
        self.reset()
        return self.settings

    def reset(self) -> None:
        self._transports.clear()

    def _transport(self, provider: str) -> Transport:
        if provider in self._fixed_transports:
            return self._fixed_transports[provider]
        if provider not in self._transports:
            self._transports[provider] = get_transport(self.settings, provider)
        return self._transports[provider]

    def _policy(self, options: CallOptions) -> RetryPolicy:
        changes: dict[str, Any] = {}
        if options.cancel_event is not None:
            changes["cancel_event"] = options.cancel_event
        if options.timeout is not None:
            changes["timeout"] = options.timeout
        if options.max_attempts is not None:
            changes["max_attempts"] = options.max_attempts
        return self.retry_policy.with_updates(**changes) if changes else self.retry_policy

    async def call_ai_result(
        self,
        messages: list[Message],
        options: Optional[CallOptions] = None,
    ) -> CallResult[str]:
        """Like ``call_ai`` but returns a CallResult instead of raising."""
        options = options or CallOptions()
        payload = build_request(messages, options, self.settings)

        try:
            transport = self._transport(payload.provider)
        except ProviderNotConfiguredError as e:
            log.warning(logger, MODULE, "call_skipped", "Provider not configured",
                        provider=payload.provider)
            return CallResult.failed(FailureReason.NON_RETRYABLE, e)

        log.info(logger, MODULE, "call_start", "Calling provider",
                 provider=payload.provider, model=payload.model,
                 max_tokens=payload.max_tokens, thinking_budget=payload.thinking_budget)
        t0 = time.monotonic()

        result = await execute(lambda: transport.send(payload), self._policy(options))
        latency_ms = int((time.monotonic() - t0) * 1000)

        if not result.success:
            log.error(logger, MODULE, "call_failed", "Provider call failed",
                      error=str(result.error), error_type=type(result.error).__name__,
                      reason=result.reason.value, provider=payload.provider,
                      model=payload.model, latency_ms=latency_ms)
            return CallResult.failed(result.reason, result.error)

        response = result.value
        if options.log_metrics:
            self.metrics.record(response.usage)

        text = response.text.strip()
        if options.extract_json:
            text = extract_json(text) or text

        log.info(logger, MODULE, "call_done", "Provider call complete",
                 provider=payload.provider, model=payload.model, latency_ms=latency_ms,
                 input_tokens=response.usage.input_tokens,
                 output_tokens=response.usage.output_tokens,
                 raw_length=len(text))
        return CallResult.ok(text)

    async def call_ai(
        self,
        messages: list[Message],
        options: Optional[CallOptions] = None,
    ) -> str:
        """Send ``messages`` and return the stripped response text.

        Raises:
            RetryError: exhausted, cancelled or timed out (see retry module).
            Exception: the provider's original error when it is not retryable.
        """
        result = await self.call_ai_result(messages, options)
        if not result.success:
            raise result.error
        return result.value

    async def invoke_structured(
        self,
        messages: list[Message],
        schema: Type[T],
        options: Optional[CallOptions] = None,
        *,
        semantic_validator: Optional[Callable[[T], tuple[bool, str]]] = None,
    ) -> ValidationResult:
        """Call the model and validate its answer against ``schema``.

        Transport failures propagate as in ``call_ai``. Content problems
        (no JSON, bad JSON, wrong shape, semantic check) come back as a
        ValidationFailure.
        """
        raw = await self.call_ai(messages, options)
        result = parse_ai_response(raw, schema)
        if not result.success or semantic_validator is None:
            return result

        is_valid, semantic_error = semantic_validator(result.data)
        if not is_valid:
            log.warning(logger, MODULE, "semantic_failed", "Semantic validation failed",
                        error=semantic_error, schema=schema.__name__)
            return ValidationFailure(error=f"Semantic: {semantic_error}")
        return result


def create_fallback(
    schema: Type[T],
    fallback_data: dict,
    reason: str,
) -> T:
    """Create a fallback instance when an LLM step fails.

    Use this to provide graceful degradation instead of crashing.
    """
    log.warning(logger, MODULE, "using_fallback",
                f"Using fallback for {schema.__name__}",
                reason=reason)
    return schema.model_validate(fallback_data)
