"""Bounded, persisted chat conversations.

One ChatSession per conversation (e.g. per legal topic being drafted). It
guarantees at most one exchange in flight, keeps the history under
``max_history`` entries and mirrors every change to an external cache.

The first turn is expanded by a context builder (the user text plus the
supporting documents) and that expanded payload is kept on entry 0 as
``content_for_api``. Later turns resend entry 0's payload followed by the
rest of the history, so the provider sees the documents once per request
and can serve them from its prompt cache.

When the quickPrompt double-check is enabled, every successful answer is
audited and the audited text replaces the assistant entry. A failed audit
keeps the original answer.

Cache failures never break the chat: they are logged and the session
carries on (an unreadable conversation loads as empty).
"""

import inspect
from typing import Awaitable, Callable, Optional, Protocol, Sequence, Union

from sentencify.llm.double_check import DoubleCheckVerifier
from sentencify.llm.request_builder import CallOptions, ContentBlock, DocumentBlock, Message, TextBlock
from sentencify.schemas.chat import ChatMessage, ChatSendResult
from sentencify.utils.logging import log, get_logger

MODULE = "llm.chat"
logger = get_logger()

MAX_CHAT_HISTORY = 20

EMPTY_MESSAGE = "Mensagem vazia"
AI_UNAVAILABLE = "IA não disponível"
BUSY = "Aguarde a resposta anterior"

ApiContent = Union[str, list[ContentBlock]]
ContextBuilder = Callable[[str], Union[ApiContent, Awaitable[ApiContent]]]

CHAT_OPTIONS = CallOptions(max_tokens=16000, temperature=0.5, top_p=0.9, top_k=80)


class ChatCache(Protocol):
    """Storage for chat histories, keyed by conversation id."""

    async def get_chat(self, key: str) -> Sequence[Union[ChatMessage, dict]]: ...

    async def save_chat(self, key: str, messages: Sequence[ChatMessage]) -> None: ...

    async def delete_chat(self, key: str) -> None: ...


def trim_history(history: list[ChatMessage], limit: int = MAX_CHAT_HISTORY) -> list[ChatMessage]:
    """Keep entry 0 and at most ``limit - 1`` of the newest entries.

    The kept tail always starts at an assistant reply, so entry 0 (a user
    turn) is followed by an answer and user/assistant turns keep alternating.
    Older exchanges and failed turns at the cut are dropped whole.
    """
    if len(history) <= limit:
        return history
    tail = history[-(limit - 1):]
    while tail and tail[0].role != "assistant":
        tail = tail[1:]
    if not tail and history[1].role == "assistant":
        # Only failed turns in the window: fall back to entry 0's own reply
        tail = [history[1]]
    return [history[0]] + tail


class ChatSession:
    """History manager for one conversation."""

    def __init__(
        self,
        invoker,
        conversation_id: str,
        cache: Optional[ChatCache] = None,
        max_history: int = MAX_CHAT_HISTORY,
        options: CallOptions = CHAT_OPTIONS,
    ):
        if max_history < 2:
            raise ValueError("max_history must be >= 2")
        self.invoker = invoker
        self.conversation_id = conversation_id
        self.cache = cache
        self.max_history = max_history
        self.options = options
        self.history: list[ChatMessage] = []
        self.generating = False
        self.is_open = False

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    async def load(self) -> list[ChatMessage]:
        """Replace the history with the cached conversation (empty on error)."""
        if self.cache is None:
            return self.history
        try:
            stored = await self.cache.get_chat(self.conversation_id)
            self.history = [
                m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
                for m in stored or []
            ]
        except Exception as e:
            log.warning(logger, MODULE, "load_fallback", "Chat cache load failed, starting empty",
                        error=str(e), error_type=type(e).__name__,
                        conversation_id=self.conversation_id)
            self.history = []
        log.debug(logger, MODULE, "load_done", "Chat history loaded",
                  conversation_id=self.conversation_id, entries=len(self.history))
        return self.history

    async def set_open(self, is_open: bool) -> None:
        """Track the open flag; reload from the cache when it turns on."""
        was_open = self.is_open
        self.is_open = is_open
        if is_open and not was_open:
            await self.load()

    async def _save(self) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.save_chat(self.conversation_id, list(self.history))
        except Exception as e:
            log.warning(logger, MODULE, "save_failed", "Chat cache save failed",
                        error=str(e), error_type=type(e).__name__,
                        conversation_id=self.conversation_id)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    @property
    def last_response(self) -> Optional[str]:
        for entry in reversed(self.history):
            if entry.role == "assistant":
                return entry.content
        return None

    def _is_fresh(self) -> bool:
        return not any(entry.error is None for entry in self.history)

    def _api_messages(self, message: str) -> list[Message]:
        first = self.history[0]
        messages = [Message(role="user", content=first.content_for_api or first.content)]
        for entry in self.history[1:]:
            if entry.error is None:
                messages.append(Message(role=entry.role, content=entry.content))
        messages.append(Message(role="user", content=message))
        return messages

    async def clear(self) -> None:
        self.history = []
        if self.cache is None:
            return
        try:
            await self.cache.delete_chat(self.conversation_id)
        except Exception as e:
            log.warning(logger, MODULE, "clear_failed", "Chat cache delete failed",
                        error=str(e), error_type=type(e).__name__,
                        conversation_id=self.conversation_id)

    async def update_last(self, content: str) -> bool:
        """Replace the newest assistant entry's content (e.g. after an audit)."""
        for i in range(len(self.history) - 1, -1, -1):
            if self.history[i].role == "assistant":
                self.history[i] = self.history[i].model_copy(update={"content": content})
                await self._save()
                return True
        return False

    def _audit_context(self) -> str:
        """Text of entry 0's expanded payload (documents as plain text only)."""
        payload = self.history[0].content_for_api if self.history else None
        if not payload:
            return ""
        if isinstance(payload, str):
            return payload
        parts = []
        for block in payload:
            if isinstance(block, TextBlock):
                parts.append(block.text)
            elif isinstance(block, DocumentBlock) and block.media_type == "text/plain":
                parts.append(block.data)
        return "\n\n".join(parts)

    async def _audit(self, message: str, response: str) -> str:
        """Run the quickPrompt audit when enabled; returns the text to show.

        A failed or empty audit keeps the primary response.
        """
        verifier = DoubleCheckVerifier(self.invoker)
        if not verifier.is_enabled("quickPrompt"):
            return response

        result = await verifier.verify(
            "quickPrompt", response, self._audit_context(), user_prompt=message,
        )
        verified = result.verified.strip() if isinstance(result.verified, str) else ""
        if result.failed or not verified or verified == response:
            return response

        await self.update_last(verified)
        log.info(logger, MODULE, "audit_applied", "Audited answer replaced the response",
                 conversation_id=self.conversation_id, corrections=len(result.corrections))
        return verified

    async def send(self, message: str, context_builder: Optional[ContextBuilder] = None) -> ChatSendResult:
        """Send one user message and record the exchange.

        Returns:
            ChatSendResult. ``success`` is False with a fixed sentinel error
            for empty input, an unavailable provider or an exchange already
            in flight, or with the provider's error message otherwise.
        """
        # All rejections happen before the first await
        if not message or not message.strip():
            return ChatSendResult(success=False, error=EMPTY_MESSAGE)
        if not self.invoker.is_available():
            return ChatSendResult(success=False, error=AI_UNAVAILABLE)
        if self.generating:
            log.debug(logger, MODULE, "send_skipped", "Exchange already in flight",
                      conversation_id=self.conversation_id)
            return ChatSendResult(success=False, error=BUSY)

        self.generating = True
        fresh = self._is_fresh()
        log.info(logger, MODULE, "send_start", "Sending chat message",
                 conversation_id=self.conversation_id, fresh=fresh, entries=len(self.history))
        try:
            context_content: Optional[ApiContent] = None
            if fresh:
                if context_builder is not None:
                    built = context_builder(message)
                    context_content = await built if inspect.isawaitable(built) else built
                api_messages = [Message(role="user", content=context_content or message)]
            else:
                api_messages = self._api_messages(message)

            response = (await self.invoker.call_ai(api_messages, self.options)).strip()

            if fresh:
                self.history = [
                    ChatMessage(role="user", content=message,
                                content_for_api=context_content or message),
                    ChatMessage(role="assistant", content=response),
                ]
            else:
                self.history = self.history + [
                    ChatMessage(role="user", content=message),
                    ChatMessage(role="assistant", content=response),
                ]
            self.history = trim_history(self.history, self.max_history)
            await self._save()

            log.info(logger, MODULE, "send_done", "Chat exchange complete",
                     conversation_id=self.conversation_id, entries=len(self.history))
            response = await self._audit(message, response)
            return ChatSendResult(success=True, response=response)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error(logger, MODULE, "send_failed", "Chat send failed",
                      error=error, error_type=type(e).__name__,
                      conversation_id=self.conversation_id)
            self.history = trim_history(
                self.history + [ChatMessage(role="user", content=message, error=error)],
                self.max_history,
            )
            await self._save()
            return ChatSendResult(success=False, error=error)
        finally:
            self.generating = False
