"""Model call, metrics, topic ordering and double-check endpoints.

Failures are mapped to short messages (never stack traces):
  exhausted retries → 502, provider rejected the request → 400,
  cancelled → 499, timed out → 504, no provider configured → 503.
"""

from fastapi import APIRouter, Depends, HTTPException, Request

from sentencify.config import DOUBLE_CHECK_OPERATIONS
from sentencify.llm.client import ProviderNotConfiguredError
from sentencify.llm.double_check import DoubleCheckResult, DoubleCheckVerifier
from sentencify.llm.invoker import LLMInvoker
from sentencify.llm.metrics import TokenMetrics
from sentencify.llm.ordering import reorder_topics
from sentencify.llm.retry import CallResult, FailureReason, describe_failure
from sentencify.schemas.api import (
    AICallRequest,
    AICallResponse,
    DoubleCheckRequest,
    TopicOrderRequest,
    TopicOrderResponse,
)
from sentencify.utils.logging import log, get_logger

MODULE = "api.ai"
logger = get_logger()

FAILURE_STATUS = {
    FailureReason.EXHAUSTED: 502,
    FailureReason.NON_RETRYABLE: 400,
    FailureReason.CANCELLED: 499,
    FailureReason.TIMEOUT: 504,
}

router = APIRouter()


def get_invoker(request: Request) -> LLMInvoker:
    return request.app.state.invoker


def _raise_for_failure(result: CallResult) -> None:
    if isinstance(result.error, ProviderNotConfiguredError):
        raise HTTPException(status_code=503, detail=str(result.error))
    raise HTTPException(
        status_code=FAILURE_STATUS[result.reason],
        detail=describe_failure(result.error),
    )


@router.post("/call", response_model=AICallResponse)
async def call_ai(body: AICallRequest, invoker: LLMInvoker = Depends(get_invoker)):
    """Send messages to the configured provider and return the text."""
    result = await invoker.call_ai_result(body.messages, body.to_options())
    if not result.success:
        log.warning(logger, MODULE, "call_failed", "AI call failed",
                    reason=result.reason.value, error_type=type(result.error).__name__)
        _raise_for_failure(result)
    return AICallResponse(text=result.value)


@router.get("/metrics", response_model=TokenMetrics)
async def get_metrics(invoker: LLMInvoker = Depends(get_invoker)):
    return invoker.metrics.snapshot


@router.delete("/metrics", response_model=TokenMetrics)
async def reset_metrics(invoker: LLMInvoker = Depends(get_invoker)):
    invoker.metrics.reset()
    return invoker.metrics.snapshot


@router.post("/topics/order", response_model=TopicOrderResponse)
async def order_topics(body: TopicOrderRequest, invoker: LLMInvoker = Depends(get_invoker)):
    """Reorder topics into procedural order. Falls back to the input order."""
    topics = await reorder_topics(body.topics, invoker)
    return TopicOrderResponse(topics=topics)


@router.post("/double-check", response_model=DoubleCheckResult)
async def double_check(body: DoubleCheckRequest, invoker: LLMInvoker = Depends(get_invoker)):
    """Audit a primary output. Never fails because of the audit itself."""
    if body.kind not in DOUBLE_CHECK_OPERATIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown operation '{body.kind}'. Expected one of: {', '.join(DOUBLE_CHECK_OPERATIONS)}",
        )
    verifier = DoubleCheckVerifier(invoker)
    return await verifier.verify(
        body.kind, body.primary_output, body.context, user_prompt=body.user_prompt,
    )
