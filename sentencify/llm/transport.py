"""Provider transports.

A transport turns one ProviderPayload into one network request and returns
the response text plus token usage. Transports never retry; the invoker
wraps ``send`` in the retry executor. Failures are raised as ProviderError
carrying the HTTP status (when there is one) so the retry executor can
classify them.

  AnthropicTransport         → Anthropic Messages API over httpx
  OpenAICompatibleTransport  → any OpenAI-compatible server via ChatOpenAI
"""

from typing import Any, Optional, Protocol

import httpx
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel

from sentencify.config import ProviderConfig
from sentencify.llm.metrics import TokenUsage
from sentencify.llm.request_builder import (
    ANTHROPIC_BETA,
    DocumentBlock,
    Message,
    ProviderPayload,
    TextBlock,
)
from sentencify.utils.logging import log, get_logger

MODULE = "llm.transport"
logger = get_logger()

ANTHROPIC_VERSION = "2023-06-01"


class ProviderError(Exception):
    """A provider call failed. ``status_code`` is None for network errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderResponse(BaseModel):
    text: str
    usage: TokenUsage = TokenUsage()
    stop_reason: Optional[str] = None


class Transport(Protocol):
    async def send(self, payload: ProviderPayload) -> ProviderResponse: ...


def _check_truncation(stop_reason: Optional[str], provider: str) -> None:
    if stop_reason in ("max_tokens", "length"):
        log.warning(logger, MODULE, "response_truncated", "Response hit the token limit",
                    provider=provider, stop_reason=stop_reason)
        raise ProviderError("Response truncated: max_tokens reached; raise max_tokens")


# =============================================================================
# ANTHROPIC
# =============================================================================

class AnthropicTransport:
    """Anthropic Messages API (prompt caching and extended thinking)."""

    def __init__(self, config: ProviderConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key.get_secret_value(),
            "anthropic-version": ANTHROPIC_VERSION,
            "anthropic-beta": ANTHROPIC_BETA,
            "content-type": "application/json",
        }

    async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        url = f"{self.config.base_url.rstrip('/')}/v1/messages"
        try:
            return await client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise ProviderError(f"Timeout calling Anthropic: {e}") from e
        except httpx.TransportError as e:
            raise ProviderError(f"Failed to fetch Anthropic: {e}") from e

    async def send(self, payload: ProviderPayload) -> ProviderResponse:
        body = payload.to_anthropic()
        if self._client is not None:
            response = await self._post(self._client, body)
        else:
            async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
                response = await self._post(client, body)

        if response.status_code >= 400:
            raise ProviderError(
                f"HTTP {response.status_code}: {_anthropic_error(response)}",
                status_code=response.status_code,
            )

        data = response.json()
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        stop_reason = data.get("stop_reason")
        _check_truncation(stop_reason, "claude")
        return ProviderResponse(
            text=text,
            usage=TokenUsage.from_anthropic(data.get("usage")),
            stop_reason=stop_reason,
        )


def _anthropic_error(response: httpx.Response) -> str:
    try:
        error = response.json().get("error", {})
    except ValueError:
        return response.text[:200]
    if isinstance(error, dict):
        return error.get("message") or error.get("type") or "unknown error"
    return str(error)


# =============================================================================
# OPENAI-COMPATIBLE (langchain)
# =============================================================================

def _langchain_content(message: Message) -> Any:
    if isinstance(message.content, str):
        return message.content
    parts: list[dict[str, Any]] = []
    for block in message.content:
        if isinstance(block, TextBlock):
            parts.append({"type": "text", "text": block.text})
        elif isinstance(block, DocumentBlock) and block.media_type == "text/plain":
            parts.append({"type": "text", "text": block.data})
        else:
            parts.append({
                "type": "file",
                "file": {
                    "filename": block.title or "document.pdf",
                    "file_data": f"data:{block.media_type};base64,{block.data}",
                },
            })
    return parts


def to_langchain_messages(payload: ProviderPayload) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if payload.system_prompt:
        messages.append(SystemMessage(content=payload.system_prompt))
    for message in payload.messages:
        content = _langchain_content(message)
        if message.role == "assistant":
            messages.append(AIMessage(content=content))
        else:
            messages.append(HumanMessage(content=content))
    return messages


class OpenAICompatibleTransport:
    """OpenAI-compatible chat completions (OpenAI, llama.cpp, vLLM)."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    def _client(self, payload: ProviderPayload) -> ChatOpenAI:
        extra_body: dict[str, Any] = {
            "chat_template_kwargs": {"enable_thinking": payload.thinking_enabled},
        }
        if payload.top_k is not None:
            extra_body["top_k"] = payload.top_k
        kwargs: dict[str, Any] = {}
        if payload.temperature is not None:
            kwargs["temperature"] = payload.temperature
        if payload.top_p is not None:
            kwargs["top_p"] = payload.top_p
        return ChatOpenAI(
            base_url=self.config.base_url,
            api_key=self.config.api_key.get_secret_value() or "not-needed",
            model=payload.model,
            max_tokens=payload.max_tokens,
            timeout=self.config.request_timeout,
            max_retries=0,
            extra_body=extra_body,
            **kwargs,
        )

    async def send(self, payload: ProviderPayload) -> ProviderResponse:
        llm = self._client(payload)
        response = await llm.ainvoke(to_langchain_messages(payload))

        content = response.content
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )
        stop_reason = (response.response_metadata or {}).get("finish_reason")
        _check_truncation(stop_reason, "openai")
        return ProviderResponse(
            text=content,
            usage=TokenUsage.from_langchain(getattr(response, "usage_metadata", None)),
            stop_reason=stop_reason,
        )
