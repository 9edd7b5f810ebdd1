"""Pydantic schemas for API requests/responses."""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from sentencify.llm.request_builder import CallOptions, Message
from sentencify.schemas.chat import ChatMessage
from sentencify.schemas.llm_outputs import Topic


class AICallRequest(BaseModel):
    """Request body for a raw model call."""
    messages: list[Message] = Field(..., min_length=1)
    max_tokens: int = Field(4000, gt=0)
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    provider: Optional[str] = None
    disable_thinking: bool = False
    timeout: Optional[float] = Field(None, gt=0, description="Per-attempt timeout in seconds")
    extract_json: bool = False
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    top_k: Optional[int] = None

    def to_options(self) -> CallOptions:
        return CallOptions(**self.model_dump(exclude={"messages"}))


class AICallResponse(BaseModel):
    text: str


class TopicOrderRequest(BaseModel):
    topics: list[Topic]


class TopicOrderResponse(BaseModel):
    topics: list[Topic]


class DoubleCheckRequest(BaseModel):
    """Request body for an audit pass over a primary output."""
    kind: str = Field(..., description="Operation name, e.g. 'dispositivo'")
    primary_output: Any
    context: str = ""
    user_prompt: str = ""


class ChatSendRequest(BaseModel):
    """A chat message; ``context`` is only used on the first turn."""
    message: str
    context: Optional[str] = Field(None, description="Supporting material for the first turn")

    @field_validator("context")
    @classmethod
    def blank_context_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class ChatHistoryResponse(BaseModel):
    conversation_id: str
    messages: list[ChatMessage] = []
    generating: bool = False
    last_response: Optional[str] = None
