"""Chat history records.

Entries are stored in the chat cache with camelCase keys (``contentForApi``)
so cached conversations stay readable by other clients of the same cache.
"""

from datetime import datetime, timezone
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from sentencify.llm.request_builder import ContentBlock


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    """One history entry.

    ``content`` is what the user sees. ``content_for_api`` is set only on the
    first entry of a conversation and holds the expanded payload (user text
    plus supporting material) that is resent on every later turn.
    """

    model_config = ConfigDict(populate_by_name=True)

    role: Literal["user", "assistant"]
    content: str
    content_for_api: Optional[Union[str, list[ContentBlock]]] = Field(
        default=None, alias="contentForApi",
    )
    ts: datetime = Field(default_factory=_now)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ChatSendResult(BaseModel):
    success: bool
    response: Optional[str] = None
    error: Optional[str] = None
