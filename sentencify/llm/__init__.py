"""LLM orchestration package.

This package provides a unified interface for all model calls:

  from sentencify.llm import LLMInvoker, Message, CallOptions

  invoker = LLMInvoker()

  # Raw text
  text = await invoker.call_ai([Message(role="user", content="...")])

  # Validated invocation
  result = await invoker.invoke_structured(
      messages,
      TopicExtractionOutput,
      semantic_validator=validate_topic_extraction,
  )

Architecture:
  retry.py           → retry with backoff, cancellation and timeout
  request_builder.py → model choice, thinking budget, cache hints
  transport.py       → Anthropic (httpx) and OpenAI-compatible (ChatOpenAI)
  client.py          → transport construction from settings
  parser.py          → JSON extraction and schema validation
  validators.py      → semantic validation beyond schema checks
  metrics.py         → token accounting
  invoker.py         → build, send, account, parse
  ordering.py        → topic ordering from model-provided indices
  double_check.py    → best-effort audit pass
  chat.py            → bounded, persisted conversations
"""

from sentencify.llm.chat import ChatSession, MAX_CHAT_HISTORY
from sentencify.llm.double_check import DoubleCheckResult, DoubleCheckVerifier
from sentencify.llm.invoker import LLMInvoker, create_fallback
from sentencify.llm.metrics import TokenMetrics, TokenMetricsAccumulator, TokenUsage
from sentencify.llm.ordering import reorder_topics, resolve_order
from sentencify.llm.parser import (
    JSONExtractionError,
    ValidationFailure,
    ValidationResult,
    ValidationSuccess,
    extract_json,
    parse_ai_response,
    safe_extract_json,
)
from sentencify.llm.request_builder import (
    CallOptions,
    DocumentBlock,
    Message,
    ProviderPayload,
    TextBlock,
    build_request,
)
from sentencify.llm.retry import (
    AI_RETRY_POLICY,
    STORAGE_RETRY_POLICY,
    CallResult,
    FailureReason,
    OperationCancelledError,
    OperationTimeoutError,
    RetryError,
    RetryExhaustedError,
    RetryPolicy,
    execute,
    with_retry,
)

__all__ = [
    # Invoker
    "LLMInvoker",
    "create_fallback",
    # Requests
    "CallOptions",
    "DocumentBlock",
    "Message",
    "ProviderPayload",
    "TextBlock",
    "build_request",
    # Retry
    "AI_RETRY_POLICY",
    "STORAGE_RETRY_POLICY",
    "CallResult",
    "FailureReason",
    "OperationCancelledError",
    "OperationTimeoutError",
    "RetryError",
    "RetryExhaustedError",
    "RetryPolicy",
    "execute",
    "with_retry",
    # Parser
    "JSONExtractionError",
    "ValidationFailure",
    "ValidationResult",
    "ValidationSuccess",
    "extract_json",
    "parse_ai_response",
    "safe_extract_json",
    # Features
    "ChatSession",
    "MAX_CHAT_HISTORY",
    "DoubleCheckResult",
    "DoubleCheckVerifier",
    "reorder_topics",
    "resolve_order",
    # Metrics
    "TokenMetrics",
    "TokenMetricsAccumulator",
    "TokenUsage",
]
