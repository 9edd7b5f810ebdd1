"""Chat endpoints.

One ChatSession per conversation id is kept in app state, least recently
used first, up to ``app.state.max_chat_sessions``. A session is loaded from
the chat cache when its conversation is first touched or touched again after
eviction, and dropped when its conversation is cleared.
"""

from collections import OrderedDict
from typing import Optional

from fastapi import APIRouter, Request

from sentencify.llm.chat import ChatSession
from sentencify.llm.request_builder import TextBlock
from sentencify.schemas.api import ChatHistoryResponse, ChatSendRequest
from sentencify.schemas.chat import ChatSendResult
from sentencify.utils.logging import log, get_logger

MODULE = "api.chat"
logger = get_logger()

MAX_OPEN_SESSIONS = 256

router = APIRouter()


def _evict_idle(sessions: "OrderedDict[str, ChatSession]", limit: int) -> None:
    """Drop least recently used sessions beyond ``limit``.

    Busy sessions and the newest one (the caller's) are never dropped.
    """
    for conversation_id in list(sessions)[:-1]:
        if len(sessions) <= limit:
            return
        if not sessions[conversation_id].generating:
            del sessions[conversation_id]
            log.debug(logger, MODULE, "session_evicted", "Chat session evicted",
                      conversation_id=conversation_id)


async def get_chat_session(request: Request, conversation_id: str) -> ChatSession:
    sessions: "OrderedDict[str, ChatSession]" = request.app.state.chat_sessions
    session = sessions.get(conversation_id)
    if session is not None:
        sessions.move_to_end(conversation_id)
    else:
        session = ChatSession(
            request.app.state.invoker,
            conversation_id,
            cache=request.app.state.chat_cache,
        )
        sessions[conversation_id] = session
        _evict_idle(sessions, request.app.state.max_chat_sessions)
        await session.set_open(True)
        log.debug(logger, MODULE, "session_opened", "Chat session opened",
                  conversation_id=conversation_id, entries=len(session.history))
    return session


def _context_builder(context: Optional[str]):
    def build(message: str):
        if not context:
            return message
        return [TextBlock(text=context), TextBlock(text=message)]
    return build


def _history(session: ChatSession) -> ChatHistoryResponse:
    return ChatHistoryResponse(
        conversation_id=session.conversation_id,
        messages=session.history,
        generating=session.generating,
        last_response=session.last_response,
    )


@router.get("/{conversation_id}", response_model=ChatHistoryResponse)
async def get_chat(conversation_id: str, request: Request):
    session = await get_chat_session(request, conversation_id)
    return _history(session)


@router.post("/{conversation_id}/messages", response_model=ChatSendResult)
async def send_message(conversation_id: str, body: ChatSendRequest, request: Request):
    """Send a message. Rejections come back as success=false, not HTTP errors."""
    session = await get_chat_session(request, conversation_id)
    return await session.send(body.message, _context_builder(body.context))


@router.delete("/{conversation_id}", status_code=204)
async def clear_chat(conversation_id: str, request: Request):
    session = await get_chat_session(request, conversation_id)
    await session.clear()
    if not session.generating:
        request.app.state.chat_sessions.pop(conversation_id, None)
