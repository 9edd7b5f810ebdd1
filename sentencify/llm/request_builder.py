"""Provider-neutral request assembly.

``build_request`` resolves the model, the reasoning budget and the cache
hints for one call. The result is a ``ProviderPayload`` that each transport
renders into its own wire format (``to_anthropic`` for the Messages API).

Cache hints follow a fixed cost rule: walking the messages in order, a block
that is not the final block of its content list is marked when its text (or
its document data) is longer than CACHE_MIN_CHARS, and marking stops after
MAX_CACHE_BLOCKS blocks in the whole payload.
"""

import asyncio
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sentencify.config import AISettings
from sentencify.utils.logging import log, get_logger

MODULE = "llm.request_builder"
logger = get_logger()

DEFAULT_MAX_TOKENS = 4000
MAX_CACHE_BLOCKS = 3
CACHE_MIN_CHARS = 2000
THINKING_HEADROOM = 2000
MIN_THINKING_BUDGET = 1024
ANTHROPIC_BETA = "prompt-caching-2024-07-31"

# Longest prefix wins
MODEL_MAX_OUTPUT_TOKENS = {
    "claude-opus-4": 32000,
    "claude-sonnet-4": 64000,
    "claude-3-7-sonnet": 64000,
    "claude-3-5-sonnet": 8192,
    "claude-3-5-haiku": 8192,
    "gpt-4.1": 32768,
    "gpt-4o": 16384,
    "o3": 100000,
    "o4-mini": 100000,
}
DEFAULT_MODEL_MAX_OUTPUT = 8192


def model_max_output(model: str) -> int:
    """Largest ``max_tokens`` the model accepts."""
    best = ""
    for prefix in MODEL_MAX_OUTPUT_TOKENS:
        if model.startswith(prefix) and len(prefix) > len(best):
            best = prefix
    return MODEL_MAX_OUTPUT_TOKENS[best] if best else DEFAULT_MODEL_MAX_OUTPUT


# =============================================================================
# MESSAGES
# =============================================================================

class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str
    cache: bool = False


class DocumentBlock(BaseModel):
    """An embedded document (base64 PDF or plain text source)."""

    type: Literal["document"] = "document"
    data: str
    media_type: str = "application/pdf"
    title: Optional[str] = None
    cache: bool = False


ContentBlock = Annotated[Union[TextBlock, DocumentBlock], Field(discriminator="type")]


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: Union[str, list[ContentBlock]]


class CallOptions(BaseModel):
    """Per-call knobs. Built per call and discarded after."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, gt=0)
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    disable_thinking: bool = False
    timeout: Optional[float] = None
    cancel_event: Optional[asyncio.Event] = Field(default=None, exclude=True)
    log_metrics: bool = True
    extract_json: bool = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None
    max_attempts: Optional[int] = None


class ProviderPayload(BaseModel):
    """Everything a transport needs to issue one request."""

    provider: str
    model: str
    messages: list[Message]
    max_tokens: int
    system_prompt: Optional[str] = None
    cache_system: bool = False
    thinking_budget: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None

    @property
    def thinking_enabled(self) -> bool:
        return self.thinking_budget is not None

    def cached_block_count(self) -> int:
        return sum(
            1
            for message in self.messages
            if isinstance(message.content, list)
            for block in message.content
            if block.cache
        )

    def to_anthropic(self) -> dict[str, Any]:
        """Render as an Anthropic Messages API request body."""
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [_anthropic_message(m) for m in self.messages],
        }
        if self.system_prompt:
            system_block: dict[str, Any] = {"type": "text", "text": self.system_prompt}
            if self.cache_system:
                system_block["cache_control"] = {"type": "ephemeral"}
            body["system"] = [system_block]
        if self.thinking_budget is not None:
            body["thinking"] = {"type": "enabled", "budget_tokens": self.thinking_budget}
        # The API rejects sampling overrides while thinking is on
        if self.thinking_budget is None:
            if self.temperature is not None:
                body["temperature"] = self.temperature
            if self.top_p is not None:
                body["top_p"] = self.top_p
            if self.top_k is not None:
                body["top_k"] = self.top_k
        return body


def _anthropic_block(block: Union[TextBlock, DocumentBlock]) -> dict[str, Any]:
    if isinstance(block, TextBlock):
        rendered: dict[str, Any] = {"type": "text", "text": block.text}
    else:
        if block.media_type == "text/plain":
            source = {"type": "text", "media_type": "text/plain", "data": block.data}
        else:
            source = {"type": "base64", "media_type": block.media_type, "data": block.data}
        rendered = {"type": "document", "source": source}
        if block.title:
            rendered["title"] = block.title
    if block.cache:
        rendered["cache_control"] = {"type": "ephemeral"}
    return rendered


def _anthropic_message(message: Message) -> dict[str, Any]:
    if isinstance(message.content, str):
        return {"role": message.role, "content": message.content}
    return {"role": message.role, "content": [_anthropic_block(b) for b in message.content]}


# =============================================================================
# BUILD
# =============================================================================

def _is_cache_candidate(block: Union[TextBlock, DocumentBlock]) -> bool:
    size = len(block.data) if isinstance(block, DocumentBlock) else len(block.text)
    return size > CACHE_MIN_CHARS


def apply_cache_hints(messages: list[Message], limit: int = MAX_CACHE_BLOCKS) -> list[Message]:
    """Return copies of ``messages`` with cache flags set. Inputs are untouched."""
    marked = 0
    result: list[Message] = []
    for message in messages:
        if isinstance(message.content, str):
            result.append(message.model_copy())
            continue

        blocks = []
        last_index = len(message.content) - 1
        for i, block in enumerate(message.content):
            cache = i < last_index and marked < limit and _is_cache_candidate(block)
            if cache:
                marked += 1
            blocks.append(block.model_copy(update={"cache": cache}))
        result.append(message.model_copy(update={"content": blocks}))
    return result


def thinking_budget_for(settings: AISettings, model: str) -> int:
    """Reasoning budget for ``model``, leaving room for the visible answer."""
    ceiling = model_max_output(model) - THINKING_HEADROOM
    return max(MIN_THINKING_BUDGET, min(settings.thinking_budget, ceiling))


def build_request(
    messages: list[Message],
    options: Optional[CallOptions] = None,
    settings: Optional[AISettings] = None,
) -> ProviderPayload:
    """Assemble the provider-neutral payload for one call.

    Args:
        messages: Conversation to send, oldest first.
        options: Per-call options (defaults: 4000 max tokens, no system prompt).
        settings: Provider settings; defaults to ``AISettings()``.

    Returns:
        ProviderPayload with the model, cache hints and token fields resolved.
    """
    options = options or CallOptions()
    settings = settings or AISettings()

    provider = options.provider or settings.provider
    model = options.model or settings.current_model(provider)
    model_max = model_max_output(model)

    max_tokens = options.max_tokens
    thinking_budget: Optional[int] = None
    if settings.use_extended_thinking and not options.disable_thinking:
        thinking_budget = thinking_budget_for(settings, model)
        max_tokens = max(max_tokens, thinking_budget + THINKING_HEADROOM)
    max_tokens = min(max_tokens, model_max)

    payload = ProviderPayload(
        provider=provider,
        model=model,
        messages=apply_cache_hints(messages),
        max_tokens=max_tokens,
        system_prompt=options.system_prompt,
        cache_system=bool(options.system_prompt),
        thinking_budget=thinking_budget,
        temperature=options.temperature,
        top_p=options.top_p,
        top_k=options.top_k,
    )

    log.debug(logger, MODULE, "request_built", "Provider payload assembled",
              provider=provider, model=model, max_tokens=max_tokens,
              thinking_budget=thinking_budget, messages=len(messages),
              cached_blocks=payload.cached_block_count())
    return payload
